from app.market.scripts import backfill_entitlements


def test_missing_database_url_exits_non_zero(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    assert backfill_entitlements.main([]) == 1
    assert (tmp_path / "logs").is_dir()


def test_parse_args_defaults():
    args = backfill_entitlements.parse_args([])
    assert args.strategy == "owner"
    assert args.page_size == 100

    args = backfill_entitlements.parse_args(["--strategy", "download_log", "--page-size", "20"])
    assert (args.strategy, args.page_size) == ("download_log", 20)
