"""
Servicio de trabajos: ciclo de vida completo.

Estados:
    programado -> activo -> finalizado
    programado | activo -> finalizado_anticipado

Los dos estados finales son terminales: el trabajo ya no se puede
modificar, borrar, recibir evidencias ni volver a finalizar.

Los usuarios solo operacionales ven únicamente los trabajos en los que
figuran como personal asignado.
"""

import logging
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import distinct, func, or_
from sqlalchemy.orm import Query, Session, aliased, joinedload

from app.core.security import BusinessRuleError, NotFoundError, PermissionDeniedError
from app.db.crud import crud
from app.enums.enums import EstadoEditable, EstadoTrabajo
from app.models.models import (
    Trabajo, TrabajoUsuario, TrabajoVehiculo, User, Vehicle, VehicleImage
)
from app.schemas.trabajo_schemas import (
    FinalizeRequest, TrabajoCreate, TrabajoUpdate, VehiculoAsignacion
)
from app.services import authorization_service, evidence_service, utils
from app.services.auth_service import AuthService
from app.services.handlers.finalize import FinalizeContext, build_finalize_chain
from app.services.identifier_service import IdentifierService

logger = logging.getLogger(__name__)

MIS_TRABAJOS_PAGE_SIZE = 20


class TrabajoService:
    """
    Operaciones sobre trabajos.

    Todas las escrituras multi-paso (crear, actualizar, finalizar) se
    ejecutan en una única transacción con AuthService.db_transaction.
    """

    # ========================================
    #  VISIBILIDAD
    # ========================================

    @staticmethod
    def _visible_to(query: Query, user: User) -> Query:
        if authorization_service.is_operational_only(user):
            query = query.filter(Trabajo.usuarios.any(TrabajoUsuario.user_id == user.id))
        return query

    @staticmethod
    def _get_or_404(db: Session, trabajo_id: int, for_update: bool = False) -> Trabajo:
        trabajo = crud.get_active_trabajo(db, trabajo_id, for_update=for_update)
        if not trabajo:
            raise NotFoundError("Trabajo")
        return trabajo

    # ========================================
    #  VISTAS
    # ========================================

    @staticmethod
    def build_view(db: Session, trabajo: Trabajo) -> Dict[str, Any]:
        """
        Vista completa: datos del trabajo, vehículos con responsable,
        personal con roles, evidencias y progreso por vehículo.
        """
        vehiculos = []
        progreso = []
        seen = set()
        for tv in trabajo.vehiculos:
            vehiculos.append({
                "asignacion_id": tv.id,
                "vehicle_id": tv.vehicle_id,
                "responsable_user_id": tv.responsable_user_id,
                "kilometros_inicio": tv.kilometros_inicio,
                "kilometros_fin": tv.kilometros_fin,
                "matricula": tv.vehicle.matricula,
                "alias": tv.vehicle.alias,
                "responsable_nombre": tv.responsable.nombre_completo,
            })
            if tv.vehicle_id not in seen:
                seen.add(tv.vehicle_id)
                progreso.append({
                    "vehicle_id": tv.vehicle_id,
                    "matricula": tv.vehicle.matricula,
                    **evidence_service.progress(db, tv.vehicle_id, trabajo.id),
                })

        usuarios = [
            {
                "user_id": tu.user_id,
                "username": tu.user.username,
                "nombre": tu.user.nombre,
                "apellidos": tu.user.apellidos,
                "roles": tu.user.roles,
            }
            for tu in sorted(trabajo.usuarios, key=lambda tu: tu.id)
        ]

        evidencias = [
            {
                "id": image.id,
                "vehicle_id": image.vehicle_id,
                "tipo_imagen": image.tipo_imagen,
                "image_url": image.image_url,
                "created_at": image.created_at,
                "matricula": matricula,
            }
            for image, matricula in (
                db.query(VehicleImage, Vehicle.matricula)
                .join(Vehicle, VehicleImage.vehicle_id == Vehicle.id)
                .filter(VehicleImage.trabajo_id == trabajo.id)
                .order_by(VehicleImage.created_at.asc(), VehicleImage.id.asc())
                .all()
            )
        ]

        return {
            "id": trabajo.id,
            "identificador": trabajo.identificador,
            "nombre": trabajo.nombre,
            "tipo": trabajo.tipo.value,
            "estado": trabajo.estado.value,
            "fecha_inicio": trabajo.fecha_inicio,
            "fecha_fin": trabajo.fecha_fin,
            "motivo_finalizacion_anticipada": trabajo.motivo_finalizacion_anticipada,
            "created_by": trabajo.created_by,
            "created_at": trabajo.created_at,
            "creado_por_nombre": trabajo.creator.nombre if trabajo.creator else None,
            "creado_por_apellidos": trabajo.creator.apellidos if trabajo.creator else None,
            "vehiculos": vehiculos,
            "usuarios": usuarios,
            "evidencias": evidencias,
            "progreso_evidencias": progreso,
        }

    @staticmethod
    def _summary(trabajo: Trabajo) -> Dict[str, Any]:
        return {
            "id": trabajo.id,
            "identificador": trabajo.identificador,
            "nombre": trabajo.nombre,
            "tipo": trabajo.tipo.value,
            "estado": trabajo.estado.value,
            "fecha_inicio": trabajo.fecha_inicio,
            "fecha_fin": trabajo.fecha_fin,
        }

    # ========================================
    #  LECTURA
    # ========================================

    @staticmethod
    def list_trabajos(
        db: Session,
        user: User,
        page: int = 1,
        limit: int = None,
        estado: Optional[EstadoTrabajo] = None,
        tipo: Optional[str] = None,
        fecha_desde: Optional[date] = None,
        fecha_hasta: Optional[date] = None,
        search: Optional[str] = None
    ) -> Tuple[List[Dict[str, Any]], int, int, int]:
        """
        Listado paginado ordenado por fecha_inicio descendente.

        Returns:
            tuple: (filas, total, page, limit)
        """
        page, limit, offset = utils.page_params(page, limit)

        query = db.query(Trabajo).filter(Trabajo.deleted_at.is_(None))
        query = TrabajoService._visible_to(query, user)

        if estado:
            query = query.filter(Trabajo.estado == estado)
        if tipo:
            query = query.filter(Trabajo.tipo == tipo)
        if fecha_desde:
            query = query.filter(Trabajo.fecha_inicio >= datetime.combine(fecha_desde, time.min))
        if fecha_hasta:
            query = query.filter(Trabajo.fecha_fin <= datetime.combine(fecha_hasta, time(23, 59, 59)))
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Trabajo.nombre.like(pattern), Trabajo.identificador.like(pattern)))

        total = query.count()

        num_vehiculos = (
            db.query(func.count(distinct(TrabajoVehiculo.vehicle_id)))
            .filter(TrabajoVehiculo.trabajo_id == Trabajo.id)
            .correlate(Trabajo)
            .scalar_subquery()
        )
        num_usuarios = (
            db.query(func.count(distinct(TrabajoUsuario.user_id)))
            .filter(TrabajoUsuario.trabajo_id == Trabajo.id)
            .correlate(Trabajo)
            .scalar_subquery()
        )

        rows = (
            query
            .options(joinedload(Trabajo.creator))
            .add_columns(num_vehiculos.label("num_vehiculos"), num_usuarios.label("num_usuarios"))
            .order_by(Trabajo.fecha_inicio.desc(), Trabajo.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

        data = []
        for trabajo, n_vehiculos, n_usuarios in rows:
            item = TrabajoService._summary(trabajo)
            item.update({
                "created_at": trabajo.created_at,
                "creado_por_nombre": trabajo.creator.nombre if trabajo.creator else None,
                "creado_por_apellidos": trabajo.creator.apellidos if trabajo.creator else None,
                "num_vehiculos": n_vehiculos or 0,
                "num_usuarios": n_usuarios or 0,
            })
            data.append(item)

        return data, total, page, limit

    @staticmethod
    def calendario(db: Session, user: User, year: int, month: int) -> List[Dict[str, Any]]:
        """
        Trabajos que se solapan con el mes:
        fecha_inicio < primer día del mes siguiente y fecha_fin >= primer día del mes.
        """
        desde = datetime(year, month, 1)
        hasta = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)

        query = db.query(Trabajo).filter(
            Trabajo.deleted_at.is_(None),
            Trabajo.fecha_inicio < hasta,
            Trabajo.fecha_fin >= desde
        )
        query = TrabajoService._visible_to(query, user)

        return [
            TrabajoService._summary(t)
            for t in query.order_by(Trabajo.fecha_inicio.asc(), Trabajo.id.asc()).all()
        ]

    @staticmethod
    def get_trabajo(db: Session, trabajo_id: int, user: User) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Si no existe o está borrado
            PermissionDeniedError: Operacional no asignado (403, no 404)
        """
        trabajo = TrabajoService._get_or_404(db, trabajo_id)

        if authorization_service.is_operational_only(user) and not crud.is_user_assigned(db, trabajo.id, user.id):
            raise PermissionDeniedError("No tienes acceso a este trabajo")

        return TrabajoService.build_view(db, trabajo)

    @staticmethod
    def mis_trabajos(db: Session, user: User, page: int = 1) -> Tuple[List[Dict[str, Any]], int, int, int]:
        """
        Trabajos asignados al usuario, una fila por vehículo asignado.

        Página fija de 20 filas.
        """
        page, limit, offset = utils.page_params(page, MIS_TRABAJOS_PAGE_SIZE)
        responsable = aliased(User)

        query = (
            db.query(Trabajo, TrabajoVehiculo, Vehicle, responsable)
            .join(TrabajoUsuario, TrabajoUsuario.trabajo_id == Trabajo.id)
            .outerjoin(TrabajoVehiculo, TrabajoVehiculo.trabajo_id == Trabajo.id)
            .outerjoin(Vehicle, TrabajoVehiculo.vehicle_id == Vehicle.id)
            .outerjoin(responsable, TrabajoVehiculo.responsable_user_id == responsable.id)
            .filter(TrabajoUsuario.user_id == user.id, Trabajo.deleted_at.is_(None))
        )

        total = query.count()
        rows = (
            query
            .order_by(Trabajo.fecha_inicio.desc(), Trabajo.id.desc(), TrabajoVehiculo.id.asc())
            .offset(offset)
            .limit(limit)
            .all()
        )

        data = []
        for trabajo, tv, vehicle, resp in rows:
            item = TrabajoService._summary(trabajo)
            item.update({
                "matricula": vehicle.matricula if vehicle else None,
                "vehiculo_alias": vehicle.alias if vehicle else None,
                "responsable": resp.nombre_completo if resp else None,
                "soy_responsable": bool(tv and tv.responsable_user_id == user.id),
            })
            data.append(item)

        return data, total, page, limit

    # ========================================
    #  ESCRITURA
    # ========================================

    @staticmethod
    def _check_dates(fecha_inicio: datetime, fecha_fin: datetime) -> None:
        if fecha_fin <= fecha_inicio:
            raise BusinessRuleError("fecha_fin debe ser posterior a fecha_inicio")

    @staticmethod
    def _dedupe_vehiculos(vehiculos: List[VehiculoAsignacion]) -> List[VehiculoAsignacion]:
        """Una asignación por vehículo (se conserva la primera)."""
        unique = {}
        for v in vehiculos:
            unique.setdefault(v.vehicle_id, v)
        return list(unique.values())

    @staticmethod
    def _check_references(db: Session, vehiculos: List[VehiculoAsignacion], usuario_ids: List[int]) -> None:
        """
        Raises:
            BusinessRuleError: Vehículo o usuario inexistente o borrado
        """
        for v in vehiculos:
            if not crud.get_active_vehicle(db, v.vehicle_id):
                raise BusinessRuleError(f"Vehículo {v.vehicle_id} no encontrado")
        user_ids = list(dict.fromkeys(usuario_ids + [v.responsable_user_id for v in vehiculos]))
        for user_id in user_ids:
            if not crud.get_active_user(db, user_id):
                raise BusinessRuleError(f"Usuario {user_id} no encontrado")

    @staticmethod
    def _assign(db: Session, trabajo: Trabajo, vehiculos: List[VehiculoAsignacion], usuario_ids: List[int]) -> None:
        """Crea asignaciones y personal; avanza el odómetro con kilometros_inicio."""
        for v in vehiculos:
            trabajo.vehiculos.append(TrabajoVehiculo(
                vehicle_id=v.vehicle_id,
                responsable_user_id=v.responsable_user_id,
                kilometros_inicio=v.kilometros_inicio or None,
            ))
            if v.kilometros_inicio:
                crud.ratchet_odometer(db, v.vehicle_id, v.kilometros_inicio)

        for user_id in dict.fromkeys(usuario_ids):
            trabajo.usuarios.append(TrabajoUsuario(user_id=user_id))

    @staticmethod
    def create_trabajo(db: Session, data: TrabajoCreate, user: User) -> Dict[str, Any]:
        """
        Crea el trabajo con su identificador, asignaciones y personal
        en una sola transacción.
        """
        TrabajoService._check_dates(data.fecha_inicio, data.fecha_fin)
        vehiculos = TrabajoService._dedupe_vehiculos(data.vehiculos)
        TrabajoService._check_references(db, vehiculos, data.usuarios)

        with AuthService.db_transaction(db):
            identificador = IdentifierService.allocate(db, utils.utcnow().year)
            trabajo = Trabajo(
                identificador=identificador,
                nombre=data.nombre,
                tipo=data.tipo,
                estado=EstadoTrabajo.programado,
                fecha_inicio=data.fecha_inicio,
                fecha_fin=data.fecha_fin,
                created_by=user.id,
            )
            db.add(trabajo)
            db.flush()
            TrabajoService._assign(db, trabajo, vehiculos, data.usuarios)

        db.refresh(trabajo)
        logger.info(f"📋 Trabajo {trabajo.identificador} creado por {user.username}")
        return TrabajoService.build_view(db, trabajo)

    @staticmethod
    def update_trabajo(db: Session, trabajo_id: int, data: TrabajoUpdate, user: User) -> Dict[str, Any]:
        """
        Actualización parcial. vehiculos y usuarios, si llegan, sustituyen
        las asignaciones anteriores.

        Raises:
            BusinessRuleError: Trabajo terminal, vuelta de activo a programado
                o fechas inválidas
        """
        trabajo = TrabajoService._get_or_404(db, trabajo_id)
        if trabajo.is_terminal:
            raise BusinessRuleError("No se puede modificar un trabajo finalizado")

        fields = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}

        if (
            fields.get("estado") == EstadoEditable.programado
            and trabajo.estado == EstadoTrabajo.activo
        ):
            raise BusinessRuleError("Un trabajo activo no puede volver a programado")

        TrabajoService._check_dates(
            fields.get("fecha_inicio", trabajo.fecha_inicio),
            fields.get("fecha_fin", trabajo.fecha_fin),
        )

        vehiculos = None
        if "vehiculos" in fields:
            vehiculos = TrabajoService._dedupe_vehiculos(data.vehiculos)
        usuario_ids = data.usuarios if "usuarios" in fields else None
        TrabajoService._check_references(db, vehiculos or [], usuario_ids or [])

        with AuthService.db_transaction(db):
            for name in ("nombre", "tipo", "fecha_inicio", "fecha_fin"):
                if name in fields:
                    setattr(trabajo, name, getattr(data, name))
            if "estado" in fields:
                trabajo.estado = EstadoTrabajo(data.estado.value)

            if vehiculos is not None:
                trabajo.vehiculos.clear()
            if usuario_ids is not None:
                trabajo.usuarios.clear()
            db.flush()

            TrabajoService._assign(db, trabajo, vehiculos or [], usuario_ids or [])

        db.refresh(trabajo)
        logger.info(f"✏️ Trabajo {trabajo.identificador} actualizado por {user.username}")
        return TrabajoService.build_view(db, trabajo)

    @staticmethod
    def delete_trabajo(db: Session, trabajo_id: int, user: User) -> None:
        """
        Borrado lógico. No se permite con el trabajo activo ni terminal.
        """
        trabajo = TrabajoService._get_or_404(db, trabajo_id)
        if trabajo.estado == EstadoTrabajo.activo:
            raise BusinessRuleError("No se puede eliminar un trabajo activo")
        if trabajo.is_terminal:
            raise BusinessRuleError("No se puede modificar un trabajo finalizado")

        with AuthService.db_transaction(db):
            trabajo.deleted_at = utils.utcnow()

        logger.info(f"🗑️ Trabajo {trabajo.identificador} eliminado por {user.username}")

    @staticmethod
    def finalize_trabajo(db: Session, trabajo_id: int, data: FinalizeRequest, user: User) -> Dict[str, Any]:
        """
        Finaliza el trabajo tras bloquear su fila (SELECT ... FOR UPDATE).

        Reglas, en orden: responsable, no terminal, motivo si es
        anticipado, evidencias completas y kilómetros finales.
        """
        kilometros_fin = {
            item.vehicle_id: item.kilometros_fin
            for item in data.vehiculos_km
            if item.kilometros_fin is not None
        }

        with AuthService.db_transaction(db):
            trabajo = TrabajoService._get_or_404(db, trabajo_id, for_update=True)
            context = FinalizeContext(
                trabajo=trabajo,
                user=user,
                db=db,
                now=utils.utcnow(),
                motivo=data.motivo_finalizacion_anticipada,
                kilometros_fin=kilometros_fin,
            )
            build_finalize_chain().handle(context)

        db.refresh(trabajo)
        logger.info(f"✅ Trabajo {trabajo.identificador} finalizado por {user.username}")
        return TrabajoService.build_view(db, trabajo)
