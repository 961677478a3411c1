from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

class UserLogin(BaseModel):
    """Schema para login de operador"""
    email: str = Field(..., description="Email del usuario")
    password: str = Field(..., min_length=6, description="Contraseña del usuario")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "email": "bodega@courier.com",
            "password": "bodega123"
        }
    })

class UserResponse(BaseModel):
    """Schema para respuesta de usuario"""
    id: int
    email: str
    first_name: str
    last_name: str
    role: str
    user_code: Optional[str] = None
    branch: Optional[str] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)

class TokenResponse(BaseModel):
    """Schema para respuesta de token"""
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
