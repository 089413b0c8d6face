"""
Excepciones del cliente.

Tres familias:
- UserError: comando inválido para el estado actual. Se muestra tal cual
  en la línea de estado, nunca es fatal.
- TransientFetchError: fallo al consultar el catálogo. Se absorbe dentro
  de la secuencia de carga y se convierte en "canción no disponible".
- InvariantViolation: índice o cursor fuera de rango. Es un bug, se deja
  propagar.
"""


class NcmTuiError(Exception):
    """Base de todas las excepciones del cliente."""


class UserError(NcmTuiError):
    """Comando inválido dado el estado actual."""


class TransientFetchError(NcmTuiError):
    """Fallo de red o de formato al hablar con el catálogo."""


class InvariantViolation(NcmTuiError):
    """Índice o cursor fuera de los límites permitidos."""
