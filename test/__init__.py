"""
Tests del sistema de backup de Actual Budget
============================================

Tests unitarios de cada etapa del pipeline y tests de integración del
ciclo completo contra un servicio remoto simulado.
"""

__version__ = "1.0.0"
