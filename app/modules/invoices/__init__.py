"""
Módulo de Facturación (Invoices)

- Líneas con impuesto CGST/SGST o IGST según el lugar de suministro
- Numeración atómica por organización (ver sequences)
- Descuento de stock en la misma transacción que la factura
- Evento invoice.created publicado vía Celery

Tablas principales:
- invoices: Facturas de venta
- invoice_line_items: Ítems de factura
"""
