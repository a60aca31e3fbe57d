from app.schemas.users import CurrentUser

__all__ = ["CurrentUser"]
