from models import db
from models.user import User


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


class IdentityDirectory:
    """Read-only view of users and their roles."""

    def get(self, user_id):
        if user_id is None:
            return None
        return db.session.get(User, user_id)

    def find_by_email(self, email: str):
        email = normalize_email(email)
        if not email:
            return None
        return User.query.filter_by(email=email).first()

    def has_role(self, user_id, role_name: str) -> bool:
        user = self.get(user_id)
        if not user:
            return False
        return role_name in user.role_names()
