#!/usr/bin/env python3
"""
Script para crear el primer superAdmin.

La API no permite registrarse sin sesión, así que la primera cuenta
superAdmin se crea directamente en la base de datos configurada en
DATABASE_URL (o .env).

Uso:
    SUPER_ADMIN_PASSWORD=... python create_super_admin.py --email jefe@empresa.com
"""
import argparse
import getpass
import os
from typing import Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config.database import SessionLocal, engine
from app.core.auth.service import AuthService
from app.shared.database.models import Base, User

SUPER_ADMIN_ROLE = "superAdmin"
MIN_PASSWORD_LENGTH = 8


def create_super_admin(db: Session, user_name: str, email: str, password: str) -> Tuple[User, bool]:
    """
    Crea la cuenta superAdmin si no existe.

    Devuelve (usuario, creado). Si ya hay un superAdmin con ese email o nombre
    se devuelve tal cual; si lo ocupa una cuenta con otro rol se lanza ValueError.
    """
    email = email.strip().lower()
    user_name = user_name.strip()
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres")

    existing = db.query(User).filter(or_(User.email == email, User.user_name == user_name)).first()
    if existing is not None:
        if existing.role != SUPER_ADMIN_ROLE:
            raise ValueError(f"'{existing.email}' ya existe con rol {existing.role}")
        return existing, False

    password_hash = AuthService.get_password_hash(password)
    user = User(
        user_name=user_name,
        email=email,
        password_hash=password_hash,
        password_history=[password_hash],
        role=SUPER_ADMIN_ROLE,
        company_id=None,
        status="active",
        modified_by="create_super_admin",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user, True


def main() -> bool:
    parser = argparse.ArgumentParser(description="Crear la cuenta superAdmin inicial")
    parser.add_argument("--email", default=os.getenv("SUPER_ADMIN_EMAIL"))
    parser.add_argument("--user-name", default=os.getenv("SUPER_ADMIN_USER_NAME", "superadmin"))
    args = parser.parse_args()

    print("🚀 Creando superAdmin inicial...")

    if not args.email:
        print("❌ ERROR: Falta el email (--email o SUPER_ADMIN_EMAIL)")
        return False

    password = os.getenv("SUPER_ADMIN_PASSWORD") or getpass.getpass("Contraseña: ")

    db = SessionLocal()
    try:
        Base.metadata.create_all(bind=engine)
        user, created = create_super_admin(db, args.user_name, args.email, password)
    except ValueError as e:
        print(f"❌ ERROR: {e}")
        return False
    except SQLAlchemyError as e:
        db.rollback()
        print(f"❌ Error de base de datos: {e}")
        return False
    finally:
        db.close()
        print("🔌 Conexión a base de datos cerrada")

    if created:
        print(f"✅ superAdmin creado: {user.email} [ID: {user.id}]")
    else:
        print(f"⏭️  superAdmin {user.email} ya existe (ID: {user.id})")

    print("\n💡 Próximo paso: iniciar sesión en POST /api/v1/auth/login")
    return True


if __name__ == "__main__":
    success = main()
    if not success:
        print("\n❌ Script falló. Revisar errores arriba.")
        raise SystemExit(1)
    print("\n✅ Script completado exitosamente")
