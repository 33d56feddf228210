from datetime import datetime
from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from poslicense import db

bp = Blueprint("main", __name__)


@bp.route("/health")
def health():
    try:
        db.session.execute(text('SELECT 1'))
        database = 'healthy'
    except SQLAlchemyError:
        db.session.rollback()
        database = 'unavailable'

    status = 'healthy' if database == 'healthy' else 'degraded'
    return jsonify({
        'status': status,
        'timestamp': datetime.utcnow().isoformat() + 'Z',
        'checks': {'database': database},
    }), 200 if status == 'healthy' else 503
