#!/usr/bin/env python3
"""
Crear usuarios de prueba y una llave de API para la integración con bodegas.

Uso: python scripts/seed_integration_data.py
"""
import os
import sys

from dotenv import load_dotenv

load_dotenv()
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config.database import SessionLocal, init_db
from app.core.auth.service import AuthService
from app.modules.api_keys.schemas import PARTNER_PERMISSIONS
from app.modules.api_keys.service import ApiKeyService
from app.shared.database.models import User

# email, password, nombre, apellido, rol, user_code, branch
USERS = [
    ("admin@courier.com", "admin123", "Ana", "Administradora", "admin", None, None),
    ("bodega@courier.com", "bodega123", "Pedro", "Bodeguero", "warehouse", None, "MIA"),
    ("cliente@courier.com", "cliente123", "María", "Cliente", "customer", "C100", "MIA"),
]


def main():
    print("🚀 Courier Warehouse Sync - Creando datos de integración...")
    init_db()
    db = SessionLocal()

    try:
        admin = None
        for email, password, first_name, last_name, role, user_code, branch in USERS:
            user = db.query(User).filter(User.email == email).first()
            if user:
                print(f"ℹ️  Usuario ya existe: {email}")
            else:
                user = User(
                    email=email,
                    password_hash=AuthService.get_password_hash(password),
                    first_name=first_name,
                    last_name=last_name,
                    role=role,
                    user_code=user_code,
                    branch=branch,
                    is_active=True
                )
                db.add(user)
                db.commit()
                db.refresh(user)
                print(f"✅ Usuario creado: {email} / {password} ({role})")
            if role == "admin":
                admin = user

        issued = ApiKeyService(db).issue_key(
            "Bodega de prueba", PARTNER_PERMISSIONS, live=False, created_by=admin
        )
        print(f"🔑 Llave de API (solo se muestra una vez): {issued.key}")
        print("💡 Enviar en el header x-warehouse-key o x-api-key")
        return True
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(0 if main() else 1)
