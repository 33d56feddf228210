from poslicense import create_app, db
from poslicense.models import License, LicenseActivation, LicensePayment

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "License": License,
        "LicenseActivation": LicenseActivation,
        "LicensePayment": LicensePayment,
        "services": app.extensions['poslicense'],
    }


if __name__ == '__main__':
    app.run(debug=app.config.get('APP_ENV') == 'development')
