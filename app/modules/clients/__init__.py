"""
Módulo de Clientes y Sucursales

Clientes (o proveedores) con sus sucursales. La provincia de la sucursal
determina la regla de impuesto aplicada a sus facturas.
"""
