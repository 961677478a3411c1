# app/shared/database/models.py
import enum

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text,
    Numeric, ForeignKey, Enum, JSON, Index, func
)
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.dialects.postgresql import JSONB

Base = declarative_base()

# JSONB en PostgreSQL, JSON genérico en SQLite
JSONType = JSON().with_variant(JSONB(), "postgresql")


class PackageStatus(str, enum.Enum):
    """Ciclo de vida interno de un paquete"""
    UNKNOWN = "Unknown"
    AT_WAREHOUSE = "AtWarehouse"
    IN_TRANSIT = "InTransit"
    AT_LOCAL_PORT = "AtLocalPort"
    DELIVERED = "Delivered"
    DELETED = "Deleted"


# =====================================================
# MIXIN PARA TIMESTAMPS
# =====================================================
class TimestampMixin:
    """Mixin que agrega campos created_at y updated_at"""
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, nullable=False, server_default=func.current_timestamp(), onupdate=func.current_timestamp())


# =====================================================
# USUARIOS (clientes y operadores)
# =====================================================

class User(Base):
    """Modelo de Usuario: clientes del portal y operadores de bodega/admin"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    # customer | warehouse | admin
    role = Column(String(50), default='customer', nullable=False)
    # Código externo del cliente (UserCode en los sistemas de bodega)
    user_code = Column(String(50), unique=True, index=True)
    branch = Column(String(100))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.current_timestamp())

    # Relationships
    packages = relationship("Package", back_populates="customer")

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class ApiKey(Base):
    """Llave de API para sistemas de bodega (solo se guarda el hash)"""
    __tablename__ = "api_keys"

    id = Column(Integer, primary_key=True, index=True)
    key_hash = Column(String(64), unique=True, nullable=False, index=True)
    key_prefix = Column(String(12), nullable=False)
    name = Column(String(255), nullable=False)
    permissions = Column(JSONType, nullable=False, default=list)
    active = Column(Boolean, default=True, nullable=False, index=True)
    expires_at = Column(DateTime, index=True)
    created_at = Column(DateTime, server_default=func.current_timestamp())
    last_used_at = Column(DateTime)
    usage_count = Column(Integer, default=0, nullable=False)
    created_by_user_id = Column(Integer, ForeignKey("users.id"))

    created_by = relationship("User", foreign_keys=[created_by_user_id])


# =====================================================
# PAQUETES
# =====================================================

class Package(Base):
    """Paquete rastreado; el tracking_id es inmutable una vez asignado"""
    __tablename__ = "packages"

    id = Column(Integer, primary_key=True, index=True)
    tracking_id = Column(String(100), unique=True, nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    external_customer_code = Column(String(50), nullable=False, index=True)

    status = Column(
        Enum(PackageStatus, name="package_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PackageStatus.AT_WAREHOUSE,
        index=True
    )
    # Metadatos del estado externo (se conserva la etapa original del aliado)
    external_status_code = Column(String(20))
    external_status_label = Column(String(100))

    manifest_id = Column(String(100), index=True)
    control_number = Column(String(100), index=True)

    # Descriptivos (todos opcionales)
    branch = Column(String(100))
    weight = Column(Numeric(10, 2))
    shipper = Column(String(255))
    description = Column(Text)
    length = Column(Numeric(10, 2))
    width = Column(Numeric(10, 2))
    height = Column(Numeric(10, 2))
    pieces = Column(Integer)
    cubes = Column(Numeric(10, 3))
    service_type_id = Column(String(100))
    service_type_name = Column(String(100))
    first_name = Column(String(255))
    last_name = Column(String(255))
    entry_staff = Column(String(255))
    entry_date = Column(DateTime)
    hs_code = Column(String(50))

    # Identificadores y discrepancias que reporta la edición del aliado
    external_package_id = Column(String(100))
    courier_id = Column(String(100))
    collection_id = Column(String(100))
    discrepancy = Column(Boolean)
    discrepancy_description = Column(Text)

    integration_payload = Column(JSONType, nullable=False, default=dict)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    # Relationships
    customer = relationship("User", back_populates="packages")
    history = relationship(
        "PackageHistory",
        back_populates="package",
        order_by="PackageHistory.id",
        cascade="all"
    )


class PackageHistory(Base):
    """Historial append-only de estados de un paquete"""
    __tablename__ = "package_history"

    id = Column(Integer, primary_key=True, index=True)
    package_id = Column(Integer, ForeignKey("packages.id"), nullable=False, index=True)
    status = Column(String(30), nullable=False)
    at = Column(DateTime, nullable=False)
    note = Column(Text)
    location = Column(String(100))
    updated_by = Column(String(255), nullable=False)

    package = relationship("Package", back_populates="history")


# =====================================================
# MANIFIESTOS
# =====================================================

class Manifest(Base, TimestampMixin):
    """Manifiesto: agrupa paquetes de un mismo vuelo o ruta"""
    __tablename__ = "manifests"

    id = Column(Integer, primary_key=True, index=True)
    manifest_id = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(Text)
    courier_id = Column(String(100))
    service_type_id = Column(String(100))
    service_type_name = Column(String(100))
    manifest_status = Column(String(20))
    manifest_status_label = Column(String(100))
    manifest_code = Column(String(100))
    flight_date = Column(DateTime)
    weight = Column(Numeric(12, 2))
    item_count = Column(Integer)
    manifest_number = Column(Integer)
    staff_name = Column(String(255))
    entry_date = Column(DateTime)
    awb_number = Column(String(100))

    # Llaves de vinculación de la última ingesta (no acumulativas)
    package_awbs = Column(JSONType, nullable=False, default=list)
    collection_codes = Column(JSONType, nullable=False, default=list)
    data = Column(JSONType)


Index("ix_api_keys_active_expires", ApiKey.active, ApiKey.expires_at)
