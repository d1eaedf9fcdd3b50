"""
Dependencias de autenticación para FastAPI.

La emisión de tokens vive fuera de este servicio; acá solo se valida el
JWT y se arma el contexto con el usuario y su rol.
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt

from circuito.modules.auth.schemas import AuthContext
from circuito.core.config import settings

ROLES = ["ADMIN", "GERENTE", "VENDEDOR", "CONTADOR"]
SALES_ROLES = ["ADMIN", "GERENTE", "VENDEDOR"]
BILLING_ROLES = ["ADMIN", "GERENTE", "CONTADOR"]
APPROVER_ROLES = ["ADMIN", "CONTADOR"]

# Security scheme
security = HTTPBearer()


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_auth_context(
        credentials: HTTPAuthorizationCredentials = Depends(security),
    ) -> AuthContext:
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No se pudieron validar las credenciales",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = jwt.decode(
                credentials.credentials,
                settings.APP_SECRET_STRING,
                algorithms=[settings.ALGORITHM]
            )
        except jwt.PyJWTError:
            raise credentials_exception

        user_id = payload.get("sub")
        user_role = payload.get("role")
        if user_id is None or user_role not in ROLES:
            raise credentials_exception

        return AuthContext(user_id=str(user_id), user_name=payload.get("name"), user_role=user_role)

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependencia para requerir roles específicos.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if auth_context.user_role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Se requiere uno de estos roles: {', '.join(allowed_roles)}"
                )
            return auth_context
        return role_checker

    @staticmethod
    def require_approver():
        """Aprobar recibos y facturas de compra: solo ADMIN y CONTADOR."""
        return AuthDependencies.require_role(APPROVER_ROLES)

    @staticmethod
    def require_any_role():
        return AuthDependencies.require_role(ROLES)


# Instancias de dependencias
get_auth_context = AuthDependencies.get_auth_context
require_approver = AuthDependencies.require_approver
require_any_role = AuthDependencies.require_any_role
