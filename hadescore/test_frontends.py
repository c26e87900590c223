"""
Unit Tests for the Front Ends
=============================

The ``hades`` command and request validation in the Flask app.
"""

import yaml

from hadescore.cli import main
from hadescore.main import app


class TestCommandLine:
    """Test single-message mode and configuration errors."""

    def test_single_message(self, tmp_path, capsys):
        config = tmp_path / "settings.yaml"
        config.write_text(yaml.safe_dump({'environment': 'testing'}))

        assert main(['--config', str(config), '--seed', '3', '--show-topic', '-m', 'topics']) == 0

        out = capsys.readouterr().out
        assert "HADES [system]: Available topics: " in out
        assert "personal finance" in out

    def test_extra_topics_directory(self, tmp_path, capsys):
        config = tmp_path / "settings.yaml"
        config.write_text(yaml.safe_dump({'environment': 'testing'}))
        topics_dir = tmp_path / "topics"
        topics_dir.mkdir()
        (topics_dir / "gardening.yaml").write_text("name: gardening\nkeywords: [soil]\n")

        assert main(['--config', str(config), '--topics-dir', str(topics_dir), '-m', 'list topics']) == 0
        assert "gardening" in capsys.readouterr().out

    def test_invalid_configuration(self, tmp_path, capsys):
        config = tmp_path / "settings.yaml"
        config.write_text(yaml.safe_dump({'conversation': {'max_history': 0}}))

        assert main(['--config', str(config), '-m', 'hello']) == 2
        assert "conversation.max_history" in capsys.readouterr().err


class TestHttpApi:
    """Test request validation that runs before any session is created."""

    def test_chat_requires_message(self):
        client = app.test_client()
        assert client.post('/chat', json={}).status_code == 400
        assert client.post('/chat', json={'message': '   '}).status_code == 400
        assert client.post('/chat', data="not json").status_code == 400
