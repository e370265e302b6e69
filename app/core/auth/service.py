# app/core/auth/service.py
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.core.auth.policy import Action, Actor, EntityKind, SelfService, authorize
from app.core.errors import Unauthenticated, ValidationFailed, store_errors
from app.shared.database.models import LoginAttempt, User, utcnow

logger = logging.getLogger(__name__)

# Password context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class AuthService:
    """Servicio de autenticación"""

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Verificar contraseña"""
        try:
            # bcrypt solo considera los primeros 72 bytes
            encoded_password = plain_password.encode('utf-8')[:72].decode('utf-8', errors='ignore')
            return pwd_context.verify(encoded_password, hashed_password)
        except ValueError as e:
            # Hash con formato desconocido: se trata como contraseña incorrecta
            logger.warning(f"Hash de contraseña inválido: {e}")
            return False

    @staticmethod
    def get_password_hash(password: str) -> str:
        """Generar hash de contraseña"""
        encoded_password = password.encode('utf-8')[:72].decode('utf-8', errors='ignore')
        return pwd_context.hash(encoded_password)

    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Crear token de acceso"""
        to_encode = data.copy()

        if expires_delta:
            expire = datetime.utcnow() + expires_delta
        else:
            expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)

        to_encode.update({"exp": expire})

        if "user_id" not in to_encode:
            raise ValueError("user_id es requerido en el token")

        return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)

    @staticmethod
    def verify_token(token: str) -> Optional[dict]:
        """Verificar y decodificar token"""
        try:
            return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        except JWTError:
            return None

    # =====================================================
    # HISTORIAL DE CONTRASEÑAS
    # =====================================================

    @staticmethod
    def password_was_used(password: str, user: User) -> bool:
        """True si la contraseña coincide con la actual o con alguna del historial"""
        hashes = [user.password_hash] + list(user.password_history or [])
        return any(AuthService.verify_password(password, h) for h in hashes)

    @staticmethod
    def push_password_history(history: Optional[List[str]], password_hash: str) -> List[str]:
        """Agrega el hash al inicio (más reciente primero) y recorta al límite configurado"""
        updated = [password_hash] + [h for h in (history or []) if h != password_hash]
        return updated[:settings.password_history_limit]


class LoginService:
    """Login con bloqueo temporal tras intentos fallidos y cambio de contraseña"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def _get_attempt(self, email: str) -> Optional[LoginAttempt]:
        return self.db.query(LoginAttempt).filter(LoginAttempt.email == email).first()

    def _register_failure(self, email: str, now: datetime):
        attempt = self._get_attempt(email)
        if attempt is None:
            attempt = LoginAttempt(email=email, attempts=0)
            self.db.add(attempt)
        elif attempt.is_locked and (attempt.locked_until is None or attempt.locked_until <= now):
            # Bloqueo vencido: el conteo empieza de nuevo
            attempt.attempts = 0
            attempt.is_locked = False
            attempt.locked_until = None

        attempt.attempts = (attempt.attempts or 0) + 1
        attempt.last_attempt = now
        if attempt.attempts >= settings.max_login_attempts:
            attempt.is_locked = True
            attempt.locked_until = now + timedelta(minutes=settings.lockout_minutes)
            logger.warning(f"Cuenta bloqueada por intentos fallidos: {email}")

    async def login(self, email: str, password: str) -> User:
        """Valida credenciales; devuelve el usuario o lanza Unauthenticated"""
        now = self.clock()
        email = email.lower()

        attempt = self._get_attempt(email)
        if attempt and attempt.is_locked and attempt.locked_until and attempt.locked_until > now:
            raise Unauthenticated("Cuenta bloqueada temporalmente por intentos fallidos")

        user = self.db.query(User).filter(User.email == email).first()

        if user is None or not AuthService.verify_password(password, user.password_hash):
            with store_errors(self.db, "login"):
                self._register_failure(email, now)
                self.db.commit()
            raise Unauthenticated("Email o contraseña incorrectos")

        if not user.is_active:
            raise Unauthenticated("Usuario inactivo")

        with store_errors(self.db, "login"):
            if attempt is not None:
                self.db.delete(attempt)
            user.last_login = now
            user.last_activity = now
            self.db.commit()
            self.db.refresh(user)

        logger.info(f"Login exitoso: {user.email} ({user.role})")
        return user

    async def change_password(self, actor: Actor, user: User, current_password: str, new_password: str) -> None:
        authorize(actor, Action.UPDATE, EntityKind.USER, user.company_id,
                  target_id=user.id, self_service=SelfService.CHANGE_PASSWORD)

        if not AuthService.verify_password(current_password, user.password_hash):
            raise ValidationFailed.for_field("current_password", "La contraseña actual es incorrecta")

        if AuthService.password_was_used(new_password, user):
            raise ValidationFailed.for_field(
                "new_password", "La nueva contraseña no puede ser igual a una contraseña usada recientemente"
            )

        with store_errors(self.db, "change_password"):
            new_hash = AuthService.get_password_hash(new_password)
            user.password_history = AuthService.push_password_history(user.password_history, new_hash)
            user.password_hash = new_hash
            user.modified_by = user.email
            self.db.commit()

        logger.info(f"Contraseña actualizada: {user.email}")
