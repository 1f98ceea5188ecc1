from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
# Handlers run in receive order per connection; rooms rely on that ordering
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None, async_handlers=False)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from rookery.routes import main
    flask_app.register_blueprint(main)

    from rookery.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from rookery.api.invites import invites
    flask_app.register_blueprint(invites, url_prefix='/api')

    # One session hub per app: connection registry, room directory, matchmaking, invites
    from rookery.services.sessions.hub import SessionHub
    flask_app.extensions['sessions'] = SessionHub(flask_app, socketio)

    from rookery.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    from rookery.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed users
            users = ['testuser1', 'testuser2', 'testuser3']
            for u in users:
                user = User(username=u)
                user.set_password('password')
                db.session.add(user)

            db.session.commit()
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
