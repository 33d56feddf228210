from poslicense.routes.main import bp as main_bp
from poslicense.routes.licenses import bp as licenses_bp
from poslicense.routes.activation import bp as activation_bp


def register_blueprints(app):
    """Register all blueprints with the Flask app."""
    app.register_blueprint(main_bp)
    app.register_blueprint(licenses_bp)
    app.register_blueprint(activation_bp)
