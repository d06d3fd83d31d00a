import logging
from pathlib import Path
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from fastapi.staticfiles import StaticFiles
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from . import email_service, models, security
from .assistant_routes import router as assistant_router
from .db import check_db_connection, create_db_and_tables, get_session
from .inventory_routes import router as inventory_router
from .menu_routes import router as menu_router
from .messaging_routes import router as messaging_router
from .order_routes import router as order_router
from .passwords import generate_temporary_password
from .report_routes import router as report_router
from .settings import settings
from .staff_routes import router as staff_router
from .users_routes import router as users_router
from .users_routes import to_user_read

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

REGISTER_ROLES = {"user", "admin", "superadmin"}

ROLE_REDIRECTS = {
    "admin": "/admin",
    "superadmin": "/manager",
    "user": "/user",
    "manager": "/manager",
    "chef": "/kitchen",
    "cook": "/kitchen",
    "waiter": "/waiter",
    "cashier": "/orders",
}


app = FastAPI(
    title="Bites & Co POS API",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Parse CORS origins from environment (comma-separated)
cors_origins_list = [
    origin.strip()
    for origin in settings.cors_origins.split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Menu images and staff photos
UPLOADS_DIR = Path(settings.uploads_dir)
UPLOADS_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=str(UPLOADS_DIR)), name="uploads")

app.include_router(users_router, prefix=API_PREFIX, tags=["Users"])
app.include_router(menu_router, prefix=API_PREFIX, tags=["Menu"])
app.include_router(order_router, prefix=API_PREFIX, tags=["Orders"])
app.include_router(staff_router, prefix=API_PREFIX, tags=["Staff"])
app.include_router(inventory_router, prefix=API_PREFIX, tags=["Inventory"])
app.include_router(report_router, prefix=API_PREFIX, tags=["Reports"])
app.include_router(messaging_router, prefix=API_PREFIX, tags=["Messaging"])
app.include_router(assistant_router, prefix=API_PREFIX, tags=["Assistant"])


@app.on_event("startup")
def on_startup() -> None:
    logger.info("Starting application...")
    create_db_and_tables()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/health/db")
def health_db() -> dict:
    """Check database connection."""
    try:
        check_db_connection()
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        raise HTTPException(status_code=503, detail=f"Database error: {e}")
    return {"status": "ok", "database": "connected"}


# ============ AUTH ============

def _set_auth_cookie(response: JSONResponse, access_token: str) -> None:
    response.set_cookie(
        key="access_token",
        value=access_token,
        httponly=True,
        secure=settings.is_production,  # Only enforce HTTPS in production
        samesite="lax",
        path="/",  # Ensure cookie is sent with all API requests
        max_age=settings.access_token_expire_minutes * 60
    )


@app.post(f"{API_PREFIX}/register", status_code=201)
def register(
    user_in: models.UserRegister,
    session: Session = Depends(get_session)
) -> dict:
    if not (user_in.username and user_in.email and user_in.password and user_in.role):
        raise HTTPException(status_code=400, detail="Username, email, password and role are required")

    role = user_in.role.strip().lower()
    if role not in REGISTER_ROLES:
        raise HTTPException(status_code=400, detail="Invalid role")

    email = user_in.email.strip()
    existing_user = session.exec(
        select(models.User).where(or_(
            models.User.username == user_in.username,
            func.lower(models.User.email) == email.lower(),
        ))
    ).first()
    if existing_user:
        raise HTTPException(status_code=400, detail="Username or email already registered")

    user = models.User(
        username=user_in.username,
        email=email,
        name=user_in.username,
        hashed_password=security.get_password_hash(user_in.password),
        role=role,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info(f"Registered {role} account {user.username}")

    return {
        "message": "User registered successfully",
        "user": to_user_read(user).model_dump(mode="json"),
        "redirectUrl": "/dash",
    }


@app.post(f"{API_PREFIX}/login")
def login(
    credentials: models.UserLogin,
    session: Session = Depends(get_session)
) -> JSONResponse:
    """Cookie login for the web app; the username may also be the account email."""
    if not (credentials.username and credentials.password and credentials.role):
        raise HTTPException(status_code=400, detail="Username, password and role are required")

    user = session.exec(
        select(models.User).where(or_(
            models.User.username == credentials.username,
            models.User.email == credentials.username,
        ))
    ).first()

    role = credentials.role.strip().lower()
    if (
        not user
        or user.role != role
        or not security.verify_password(credentials.password, user.hashed_password)
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username, password, or role",
        )

    redirect_url = ROLE_REDIRECTS.get(user.role)
    if redirect_url is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid role")

    response = JSONResponse(content={
        "message": "Login successful",
        "user": to_user_read(user).model_dump(mode="json"),
        "redirectUrl": redirect_url,
    })
    _set_auth_cookie(response, security.create_user_token(user))
    logger.info(f"{user.username} logged in as {user.role}")
    return response


@app.post(f"{API_PREFIX}/token")
def login_for_access_token(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    session: Session = Depends(get_session)
) -> dict:
    statement = select(models.User).where(or_(
        models.User.username == form_data.username,
        models.User.email == form_data.username,
    ))
    user = session.exec(statement).first()

    if not user or not security.verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return {"access_token": security.create_user_token(user), "token_type": "bearer"}


@app.api_route(f"{API_PREFIX}/logout", methods=["GET", "POST"])
def logout(
    request: Request,
    bearer: Annotated[str | None, Depends(security.oauth2_scheme)],
    session: Session = Depends(get_session),
) -> JSONResponse:
    token = security.read_token(request, bearer)
    user = security.resolve_user(token, session) if token else None
    if user:
        # Invalidates every token issued before now
        user.token_version += 1
        session.add(user)
        session.commit()
        logger.info(f"{user.username} logged out")

    response = JSONResponse(content={"status": "success", "message": "Logged out"})
    response.delete_cookie(key="access_token", path="/")  # Must match path used in set_cookie
    return response


@app.get(f"{API_PREFIX}/users/me", response_model=models.UserReadWithPermissions)
def read_users_me(
    current_user: Annotated[models.User, Depends(security.get_current_user)]
):
    return to_user_read(current_user)


@app.post(f"{API_PREFIX}/forgotpassword")
async def forgot_password(
    body: models.ForgotPasswordRequest,
    session: Session = Depends(get_session)
) -> dict:
    """Email a new temporary password; the stored one only changes once the mail is out."""
    email = (body.email or "").strip()
    if not email:
        raise HTTPException(status_code=400, detail="Email is required")

    user = session.exec(
        select(models.User).where(func.lower(models.User.email) == email.lower())
    ).first()
    if not user:
        raise HTTPException(status_code=404, detail="No account found with this email address")

    temporary_password = generate_temporary_password()
    sent = await email_service.send_password_reset_email(user.email, user.name, temporary_password)
    if not sent:
        raise HTTPException(status_code=500, detail="Email sending failed")

    user.hashed_password = security.get_password_hash(temporary_password)
    user.token_version += 1
    session.add(user)
    session.commit()
    logger.info(f"Password reset for {user.username}")

    return {"success": True, "message": "A new password has been sent to your email"}
