"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/veriballot/__init__.py`.
Cliente verificable para un registro de boletas a prueba de manipulación.

Componentes detectados:
  - (sin componentes de nivel de módulo / no top-level components)

======================== ENGLISH ========================
File: `src/veriballot/__init__.py`.
Verifying client for a tamper-evident ballot ledger.

Detected components:
  - (sin componentes de nivel de módulo / no top-level components)
"""

__version__ = "0.2.0"
