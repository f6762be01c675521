# deps/authz.py
from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from deps.auth import get_current_user
from models import Role, User, UserRole

# กลุ่ม role ที่ใช้บ่อย
FINANCE_ROLES = ("admin", "accounting")
OPERATIONS_ROLES = ("admin", "accounting", "operator")


def require_roles(*role_codes: str):
    """ผ่านเมื่อ user มี role ใด role หนึ่งในรายการ (superuser ผ่านเสมอ)"""
    def dep(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> User:
        if getattr(user, "is_superuser", False):
            return user
        q = (
            db.query(Role.id)
              .join(UserRole, UserRole.role_id == Role.id)
              .filter(UserRole.user_id == user.id, Role.code.in_(role_codes))
        )
        if not db.query(q.exists()).scalar():
            need = ", ".join(role_codes)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Need any of roles: {need}")
        return user
    return dep


require_finance = require_roles(*FINANCE_ROLES)
require_operations = require_roles(*OPERATIONS_ROLES)
