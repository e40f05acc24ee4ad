import os
import logging
import secrets

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from config import Config
from events import socketio
from models import db
from routes import bp
from services import ChatError

logger = logging.getLogger('ChatApp')


def configure_logging(level='INFO'):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    if not app.config.get('SECRET_KEY'):
        app.config['SECRET_KEY'] = secrets.token_hex(32)
        logger.warning("Using generated SECRET_KEY. Set SECRET_KEY environment variable in production!")

    uri = app.config['SQLALCHEMY_DATABASE_URI']
    if uri.startswith('sqlite:///'):
        os.makedirs(os.path.dirname(uri[len('sqlite:///'):]) or '.', exist_ok=True)
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

    db.init_app(app)
    with app.app_context():
        db.create_all()

    app.register_blueprint(bp)
    socketio.init_app(app, cors_allowed_origins=app.config['CORS_ALLOWED_ORIGINS'])

    @app.errorhandler(ChatError)
    def chat_error(e):
        return jsonify({'success': False, 'message': e.message}), e.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def too_large(e):
        return jsonify({'success': False, 'message': 'File too large'}), 413

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({'success': False, 'message': e.description}), e.code

    return app


def main():
    configure_logging(Config.LOG_LEVEL)
    app = create_app()
    logger.info(f"Chat server listening on {Config.HOST}:{Config.PORT}")
    socketio.run(app, host=Config.HOST, port=Config.PORT, debug=Config.DEBUG,
                 allow_unsafe_werkzeug=Config.DEBUG or Config.ALLOW_UNSAFE_WERKZEUG)


if __name__ == '__main__':
    main()
