from flask import Flask, jsonify
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
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from peekachoo.errors import register_error_handlers
    register_error_handlers(flask_app)

    from peekachoo.main import main
    flask_app.register_blueprint(main)

    from peekachoo.api.leaderboard import leaderboard
    flask_app.register_blueprint(leaderboard, url_prefix='/api/leaderboard')

    from peekachoo.api.achievements import achievements
    flask_app.register_blueprint(achievements, url_prefix='/api/achievements')

    from peekachoo.api.stats import stats
    flask_app.register_blueprint(stats, url_prefix='/api/stats')

    from peekachoo.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    from peekachoo.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({
            'success': False,
            'error': {'code': 'UNAUTHORIZED', 'message': 'Authentication required'},
        }), 401

    @click.command('seed-achievements')
    def seed_achievements_command():
        """Inserts any missing achievements from the default catalog."""
        from peekachoo.services.scoring.achievements import seed_achievements
        with flask_app.app_context():
            added = seed_achievements(db.session)
            db.session.commit()
            print(f'Seeded {added} achievements.')

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the achievement catalog."""
        from peekachoo.services.scoring.achievements import seed_achievements
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            added = seed_achievements(db.session)
            db.session.commit()
            print(f'Database has been reset; seeded {added} achievements.')

    flask_app.cli.add_command(seed_achievements_command)
    flask_app.cli.add_command(db_reset_command)

    return flask_app
