from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.core.auth.dependencies import actor_from_user, get_current_user
from app.core.auth.service import AuthService, LoginService
from app.core.auth.schemas import ChangePasswordRequest, TokenResponse, UserLogin, UserResponse
from app.shared.database.models import User
from app.shared.schemas.common import MessageResponse

router = APIRouter()


def _user_response(db: Session, user: User) -> UserResponse:
    actor = actor_from_user(db, user)
    response = UserResponse.model_validate(user)
    response.company_ids = sorted(actor.company_ids)
    return response


@router.post("/login", response_model=TokenResponse)
async def login(
    user_login: UserLogin,
    db: Session = Depends(get_db)
):
    """
    Endpoint de login para obtener token de acceso

    **Body:**
    ```json
        {
            "email": "user@example.com",
            "password": "password123"
        }
    ```

    Tras varios intentos fallidos la cuenta se bloquea temporalmente.
    """
    service = LoginService(db)
    user = await service.login(user_login.email, user_login.password)

    # El rol se lee de la base de datos en cada petición, el token solo identifica
    access_token = AuthService.create_access_token(data={"user_id": user.id})

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        user=_user_response(db, user)
    )


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Obtener información del usuario actual
    **Headers requeridos:**
    - Authorization: Bearer {token}
    """
    return _user_response(db, current_user)


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    password_data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Cambiar la contraseña propia

    No se permite reutilizar ninguna de las contraseñas recientes.
    """
    service = LoginService(db)
    await service.change_password(
        actor_from_user(db, current_user), current_user,
        password_data.current_password, password_data.new_password
    )
    return MessageResponse(message="Contraseña actualizada")
