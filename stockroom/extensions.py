"""Extension singletons, bound to an app in create_app."""
from flask_caching import Cache
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
# render_as_batch lets Alembic alter tables on SQLite
migrate = Migrate(compare_type=True, render_as_batch=True)
cache = Cache()
login_manager = LoginManager()


@login_manager.user_loader
def load_user(user_id):
    """Only active users of active organizations get a session."""
    from .models import User

    user = db.session.get(User, str(user_id)) if user_id else None
    if user is None or not user.is_active:
        return None
    if user.organization is not None and not user.organization.is_active:
        return None
    return user
