"""
HTTP API

Flask blueprint exposing ingestion, question answering and session history
under /api/v1/data. Responses use the {success, message, ...payload}
envelope.
"""

import logging
from typing import Optional

from flask import Blueprint, Flask, current_app, jsonify, request, session

from ..config import get_config
from ..main_pipeline import NewsQuerySystem
from ..query.orchestrator import InvalidInput

logger = logging.getLogger(__name__)

SESSION_ID_KEY = 'sid'

data_bp = Blueprint('data', __name__)


def _system() -> NewsQuerySystem:
    return current_app.extensions['newsrag']


def _error(message: str, status: int):
    return jsonify({'success': False, 'message': message}), status


def _session_id(create: bool = False) -> Optional[str]:
    session_id = session.get(SESSION_ID_KEY)
    if session_id is None and create:
        session_id = _system().session_store.create_session()
        session[SESSION_ID_KEY] = session_id
        session.permanent = True
    return session_id


@data_bp.route('/news', methods=['GET'])
def get_all_data():
    try:
        embedded_articles = _system().ingest_news()
    except Exception as e:
        logger.exception("News ingestion failed")
        return _error(str(e), 500)

    return jsonify({
        'success': True,
        'message': 'feed retrieved successfully',
        'embeddedArticles': embedded_articles,
    }), 200


@data_bp.route('/query/chatbot', methods=['POST'])
def query_chatbot():
    body = request.get_json(silent=True) or {}
    query_text = body.get('queryText')
    number_of_passages = body.get('numberOfPassages', 5)

    system = _system()
    try:
        session_id = _session_id(create=True)
        result = system.ask(query_text, top_k=number_of_passages, session_id=session_id)
    except InvalidInput as e:
        return _error(str(e), 400)
    except Exception as e:
        logger.exception("Query processing failed")
        return _error(str(e), 500)

    return jsonify({
        'success': True,
        'message': result.message,
        **result.to_dict(),
    }), 200


@data_bp.route('/session/history', methods=['GET'])
def get_session_history():
    try:
        history = _system().session_store.get_history(_session_id())
    except Exception as e:
        return _error(str(e), 500)

    return jsonify({
        'success': True,
        'message': 'Session history retrieved successfully',
        'history': [entry.to_dict() for entry in history],
    }), 200


@data_bp.route('/session/clear-history', methods=['GET'])
def clear_session():
    try:
        _system().session_store.clear_session(_session_id())
    except Exception as e:
        return _error(str(e), 500)

    session.clear()
    return jsonify({
        'success': True,
        'message': 'Session cleared successfully',
    }), 200


def create_app(system: Optional[NewsQuerySystem] = None, start: bool = True) -> Flask:
    """
    Build the Flask application.

    Args:
        system: Pre-built system (default: built from the global config)
        start: Ensure the collection and start background warming
    """
    if system is None:
        system = NewsQuerySystem(config=get_config())

    app = Flask(__name__)
    app.config['SECRET_KEY'] = system.config.session_secret
    app.config['PERMANENT_SESSION_LIFETIME'] = system.config.session_ttl_seconds
    app.extensions['newsrag'] = system
    app.register_blueprint(data_bp, url_prefix='/api/v1/data')

    if start:
        system.start()

    return app
