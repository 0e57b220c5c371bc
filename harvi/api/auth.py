from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel, EmailStr
from ..core.database import get_db
from ..core.auth import verify_password, create_access_token, get_password_hash, require_admin
from ..models.admin import Admin
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str
    user_type: str
    user_id: int
    user_name: str


class RegisterAdminRequest(BaseModel):
    name: str
    email: EmailStr
    password: str


def _token_response(admin: Admin) -> LoginResponse:
    token = create_access_token(data={"sub": admin.id, "type": "admin"})
    return LoginResponse(
        access_token=token,
        token_type="bearer",
        user_type="admin",
        user_id=admin.id,
        user_name=admin.name
    )


@router.post("/login", response_model=LoginResponse)
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db)):
    """
    Authenticate an admin and return an access token
    """
    try:
        logger.info(f"Login attempt for email: {request.email}")

        admin_result = await db.execute(
            select(Admin).filter(Admin.email == request.email.lower())
        )
        admin = admin_result.scalar_one_or_none()

        if admin and verify_password(request.password, admin.hashed_password):
            logger.info(f"Admin login successful: {admin.email}")
            return _token_response(admin)

        logger.warning(f"Failed login attempt for email: {request.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Login error for {request.email}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication failed"
        )


@router.post("/register-admin", response_model=LoginResponse)
async def register_admin(request: RegisterAdminRequest, db: AsyncSession = Depends(get_db)):
    """
    Register the first admin user (only if no admins exist)
    """
    try:
        logger.info(f"Admin registration attempt for email: {request.email}")

        existing_admin_result = await db.execute(select(Admin).limit(1))
        if existing_admin_result.scalar_one_or_none():
            logger.warning("Admin registration attempted but admin already exists")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Admin user already exists"
            )

        new_admin = Admin(
            name=request.name,
            email=request.email.lower(),
            hashed_password=get_password_hash(request.password)
        )

        db.add(new_admin)
        await db.commit()
        await db.refresh(new_admin)

        logger.info(f"Admin registered successfully: {new_admin.email}")
        return _token_response(new_admin)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Admin registration error for {request.email}: {e}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Registration failed"
        )


@router.get("/check-admin-exists")
async def check_admin_exists(db: AsyncSession = Depends(get_db)):
    """
    Check if any admin user exists in the system
    """
    try:
        admin_result = await db.execute(select(Admin).limit(1))
        return {"admin_exists": admin_result.scalar_one_or_none() is not None}

    except Exception as e:
        logger.error(f"Error checking admin existence: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not check admin status"
        )


@router.post("/logout")
async def logout():
    """
    Logout endpoint (client-side token removal)
    """
    return {"message": "Logged out successfully"}


@router.get("/me")
async def get_current_user(admin_id: int = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    """
    Get current admin information
    """
    result = await db.execute(select(Admin).filter(Admin.id == admin_id))
    admin = result.scalar_one_or_none()
    if not admin:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    return {
        "id": admin.id,
        "name": admin.name,
        "email": admin.email,
        "user_type": "admin"
    }
