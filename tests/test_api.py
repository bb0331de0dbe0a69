"""
Tests for the Flask HTTP API

Uses the Flask test client against a system with a real FAISS index and
in-memory cache; Ollama is mocked.
"""

import os
from unittest.mock import Mock, patch

import pytest

from newsrag.api.app import create_app
from newsrag.config import Config
from newsrag.main_pipeline import NewsQuerySystem
from newsrag.models import Article
from newsrag.storage.vector_store import IndexPoint, VectorStore


DIM = 4


@pytest.fixture
def system():
    with patch.dict(os.environ, {
        'CACHE_BACKEND': 'memory',
        'EMBEDDING_DIMENSION': str(DIM),
        'SESSION_SECRET': 'test-secret',
    }, clear=True):
        config = Config()

    embedder = Mock()
    embedder.embed.side_effect = lambda texts: [[1.0, 0.0, 0.0, 0.0] for _ in texts]
    answerer = Mock()
    answerer.generate.return_value = "AI is changing newsrooms."

    system = NewsQuerySystem(config=config, embedder=embedder, vector_index=VectorStore(), answerer=answerer)
    system.vector_index.ensure_collection(config.collection_name, dimension=DIM)
    system.vector_index.upsert(config.collection_name, [
        IndexPoint(id="a1", vector=[1.0, 0.0, 0.0, 0.0],
                   payload={'title': 'AI in newsrooms', 'link': 'https://x/a1', 'fullContent': 'Editors use AI.'}),
    ])
    yield system
    system.shutdown()


@pytest.fixture
def client(system):
    app = create_app(system, start=False)
    app.config['TESTING'] = True
    return app.test_client()


class TestChatbotQuery:

    def test_miss_then_hit(self, client):
        first = client.post('/api/v1/data/query/chatbot', json={'queryText': 'What is AI?', 'numberOfPassages': 1})
        second = client.post('/api/v1/data/query/chatbot', json={'queryText': 'what is ai?'})

        assert first.status_code == 200
        body = first.get_json()
        assert body['success'] is True
        assert body['query'] == 'What is AI?'
        assert body['answer'] == "AI is changing newsrooms."
        assert body['servedFromCache'] is False
        assert body['passages'][0]['title'] == 'AI in newsrooms'

        assert second.get_json()['servedFromCache'] is True

    def test_missing_query_text_is_400(self, client):
        response = client.post('/api/v1/data/query/chatbot', json={})

        assert response.status_code == 400
        assert response.get_json() == {
            'success': False,
            'message': 'Query text is required and must be a string',
        }

    def test_non_string_query_is_400(self, client):
        response = client.post('/api/v1/data/query/chatbot', json={'queryText': 123})

        assert response.status_code == 400

    def test_invalid_passage_count_is_400(self, client):
        response = client.post('/api/v1/data/query/chatbot', json={'queryText': 'AI', 'numberOfPassages': 0})

        assert response.status_code == 400

    def test_no_results_is_200(self, client, system):
        system.vector_index._collections.clear()
        system.vector_index.ensure_collection(system.config.collection_name, dimension=DIM)

        response = client.post('/api/v1/data/query/chatbot', json={'queryText': 'Anything?'})

        body = response.get_json()
        assert response.status_code == 200
        assert body['message'] == 'No relevant passages found'
        assert body['answer'] == 'No relevant information available to answer the query.'
        assert body['passages'] == []

    def test_unexpected_error_is_500(self, client, system):
        with patch.object(system, 'ask', side_effect=RuntimeError("boom")):
            response = client.post('/api/v1/data/query/chatbot', json={'queryText': 'AI'})

        assert response.status_code == 500
        assert response.get_json()['success'] is False


class TestSessionHistory:

    def test_history_follows_session_cookie(self, client):
        client.post('/api/v1/data/query/chatbot', json={'queryText': 'What is AI?'})
        client.post('/api/v1/data/query/chatbot', json={'queryText': 'What is AI?'})

        response = client.get('/api/v1/data/session/history')

        body = response.get_json()
        assert body['message'] == 'Session history retrieved successfully'
        assert [e['query'] for e in body['history']] == ['What is AI?', 'What is AI?']

    def test_new_client_has_empty_history(self, client):
        body = client.get('/api/v1/data/session/history').get_json()

        assert body['success'] is True
        assert body['history'] == []

    def test_clear_history(self, client):
        client.post('/api/v1/data/query/chatbot', json={'queryText': 'What is AI?'})

        response = client.get('/api/v1/data/session/clear-history')

        assert response.get_json() == {'success': True, 'message': 'Session cleared successfully'}
        assert client.get('/api/v1/data/session/history').get_json()['history'] == []


class TestNewsIngestion:

    def test_news_returns_embedded_articles(self, client, system):
        article = Article(title="T", link="https://x/t", full_content="Body", embedding=[0.5] * DIM)

        with patch.object(system.ingestor, 'ingest', return_value=[article]):
            response = client.get('/api/v1/data/news')

        body = response.get_json()
        assert response.status_code == 200
        assert body['message'] == 'feed retrieved successfully'
        assert body['embeddedArticles'][0]['link'] == "https://x/t"

    def test_news_failure_is_500(self, client, system):
        with patch.object(system.ingestor, 'ingest', side_effect=RuntimeError("feed down")):
            response = client.get('/api/v1/data/news')

        assert response.status_code == 500
        assert response.get_json() == {'success': False, 'message': 'feed down'}


class TestAppFactory:

    def test_start_runs_system_start(self, system):
        with patch.object(system, 'start') as mock_start:
            create_app(system)

        mock_start.assert_called_once_with()

    def test_secret_key_from_config(self, system):
        app = create_app(system, start=False)

        assert app.config['SECRET_KEY'] == 'test-secret'
