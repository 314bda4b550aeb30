from __future__ import annotations

import io
import json

import pytest

from src import cli


def test_parser_discover_args():
    args = cli.build_parser().parse_args(
        ["discover", "--name", "Jane Doe", "--company", "Acme", "--domain", "acme.com"]
    )
    assert args.func is cli._cmd_discover
    assert args.role is None
    assert args.known_pattern is None
    assert args.json is False


def test_no_command_is_an_error():
    with pytest.raises(SystemExit):
        cli.main([])


def test_print_event_human_output():
    out = io.StringIO()
    cli._print_event(
        {"type": "step", "step": {"id": "step_1", "label": "Trying email patterns", "status": "done"}},
        out,
    )
    cli._print_event(
        {
            "done": True,
            "result": {
                "success": True,
                "email": "jane.doe@acme.com",
                "verificationStatus": "verified",
                "method": "pattern",
            },
        },
        out,
    )
    text = out.getvalue()
    assert "[step_1] Trying email patterns ok" in text
    assert "=== Result ===" in text
    assert "jane.doe@acme.com" in text


def test_load_items_reads_batch_file(tmp_path):
    path = tmp_path / "batch.json"
    path.write_text(
        json.dumps(
            {
                "items": [
                    {
                        "clientId": "c1",
                        "to": "ann@example.com",
                        "subject": "Hi",
                        "body": "Hello",
                        "attachments": [{"filename": "a.txt", "mimeType": "text/plain", "data": "aGk="}],
                    }
                ]
            }
        ),
        encoding="utf-8",
    )
    items = cli._load_items(str(path))
    assert len(items) == 1
    assert items[0].client_id == "c1"
    assert items[0].attachments[0].filename == "a.txt"
