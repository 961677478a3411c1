from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.core.auth.service import AuthService
from app.core.auth.schemas import UserLogin, TokenResponse, UserResponse
from app.core.auth.dependencies import get_current_user
from app.core.errors import ForbiddenError, UnauthorizedError
from app.shared.database.models import User

router = APIRouter()

@router.post("/login-json", response_model=TokenResponse)
async def login_json(
    user_login: UserLogin,
    db: Session = Depends(get_db)
):
    """
    Login de operadores (bodega / admin)

    **Body:**
    ```json
        {
            "email": "bodega@courier.com",
            "password": "bodega123"
        }
    ```
    """
    user = db.query(User).filter(User.email == user_login.email).first()

    if not user or not AuthService.verify_password(user_login.password, user.password_hash):
        raise UnauthorizedError("Email o contraseña incorrectos")

    if not user.is_active:
        raise ForbiddenError("Usuario inactivo")

    access_token = AuthService.create_access_token(data={
        "user_id": user.id,
        "email": user.email,
        "role": user.role
    })

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        user=UserResponse.model_validate(user)
    )

@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """
    Obtener información del usuario actual
    **Headers requeridos:**
    - Authorization: Bearer {token}
    """
    return UserResponse.model_validate(current_user)
