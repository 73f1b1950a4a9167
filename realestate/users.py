"""User directory routes for the Real Estate API."""

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi_limiter.depends import RateLimiter

from . import crud, schemas
from .auth import Principal, ensure_self, get_current_principal, is_admin, verify_admin
from .core import get_settings
from .database import Store, get_store, serialize, serialize_all
from .errors import Forbidden

router = APIRouter(prefix="/users", tags=["users"])
settings = get_settings()


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    dependencies=[
        Depends(
            RateLimiter(
                times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS
            )
        )
    ],
)
def register_user(
    user_in: schemas.UserCreate,
    response: Response,
    principal: Principal = Depends(get_current_principal),
    store: Store = Depends(get_store),
):
    """
    Register the signed-in user on first login.

    Returns 201 with the new id, or 200 if the user already exists.

    Args:
        user_in (UserCreate): Email, name and photo of the user.
        response (Response): Used to downgrade the status to 200.
        principal (Principal): Authenticated caller.
        store (Store): Document store.

    Raises:
        HTTPException: If the email is not the caller's.
    """
    ensure_self(principal, user_in.email)
    user, created = crud.register_if_absent(store, user_in)
    if not created:
        response.status_code = status.HTTP_200_OK
        return {"message": "User already exists", "insertedId": None}
    return {"message": "User created", "insertedId": str(user["_id"])}


@router.get("")
def list_users(
    role: str | None = Query(None),
    admin=Depends(verify_admin),
    store: Store = Depends(get_store),
):
    """List all users, optionally filtered by role (admin only)."""
    return serialize_all(crud.list_users(store, role))


@router.get("/role/{email}")
def get_role(
    email: str,
    principal: Principal = Depends(get_current_principal),
    store: Store = Depends(get_store),
):
    """Return the caller's role, used by the frontend to pick a dashboard."""
    ensure_self(principal, email)
    user = crud.get_user_by_email(store, email)
    return {"role": user.get("role", "user")}


@router.get("/{email}")
def get_user(
    email: str,
    principal: Principal = Depends(get_current_principal),
    store: Store = Depends(get_store),
):
    """
    Retrieve a user by email.

    Users may read their own record; admins may read anyone's.

    Raises:
        HTTPException: 403 for other users' records, 404 if absent.
    """
    if principal.email != email.lower() and not is_admin(store, principal):
        raise Forbidden("Forbidden access")
    return serialize(crud.get_user_by_email(store, email))


@router.patch("/role/{user_id}")
def update_role(
    user_id: str,
    payload: schemas.RoleUpdate,
    admin=Depends(verify_admin),
    store: Store = Depends(get_store),
):
    """
    Change a user's role (admin only).

    Setting ``fraud`` also removes the user's properties.
    """
    return crud.set_role(store, user_id, payload.role)


@router.patch("/mark-fraud/{user_id}")
def mark_fraud(
    user_id: str,
    admin=Depends(verify_admin),
    store: Store = Depends(get_store),
):
    """Mark an agent as fraud and remove their properties (admin only)."""
    return crud.mark_fraud(store, user_id)


@router.patch("/{email}")
def update_user(
    email: str,
    changes: schemas.UserUpdate,
    principal: Principal = Depends(get_current_principal),
    store: Store = Depends(get_store),
):
    """Update the caller's own profile fields."""
    ensure_self(principal, email)
    return serialize(crud.update_user_by_email(store, email, changes))


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    admin=Depends(verify_admin),
    store: Store = Depends(get_store),
):
    """Delete a user record (admin only). Their properties are kept."""
    crud.delete_user(store, user_id)
    return {"deletedCount": 1}
