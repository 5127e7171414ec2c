import pytest

from jungian_journals.cli import main, build_parser


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_expire_subscriptions_command(dummy_db):
    dummy_db.subscriptions.append({"id": "s1", "user_id": "u", "status": "active",
                                   "end_date": "2000-01-01T00:00:00+00:00"})
    assert main(["expire-subscriptions"], db=dummy_db) == 0
    assert dummy_db.subscriptions[0]["status"] == "expired"


def test_backfill_command(dummy_db):
    assert main(["backfill-embeddings", "--limit", "2"], db=dummy_db) == 0
    embedded = [r for r in dummy_db.tables["video_content"] if r.get("embedding")]
    assert len(embedded) == 2
