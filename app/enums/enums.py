from enum import Enum


class RoleName(str, Enum):
    administrador = "administrador"
    gestor = "gestor"
    tecnico = "tecnico"
    enfermero = "enfermero"
    medico = "medico"


# Roles de gestión; el resto tiene visibilidad restringida
MANAGEMENT_ROLES = (RoleName.administrador, RoleName.gestor)


class EstadoTrabajo(str, Enum):
    programado = "programado"
    activo = "activo"
    finalizado = "finalizado"
    finalizado_anticipado = "finalizado_anticipado"


TERMINAL_STATES = (EstadoTrabajo.finalizado, EstadoTrabajo.finalizado_anticipado)


class EstadoEditable(str, Enum):
    """Estados que se pueden escribir mediante actualización genérica"""
    programado = "programado"
    activo = "activo"


class TipoTrabajo(str, Enum):
    traslado = "traslado"
    cobertura_evento = "cobertura_evento"
    otro = "otro"


class TipoImagen(str, Enum):
    frontal = "frontal"
    lateral_derecho = "lateral_derecho"
    trasera = "trasera"
    lateral_izquierdo = "lateral_izquierdo"
    liquidos = "liquidos"


# Orden fijo de las cinco evidencias obligatorias
REQUIRED_IMAGE_TYPES = [t.value for t in TipoImagen]
