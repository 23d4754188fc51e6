from core import app_paths


def test_resolve_data_path_respects_env(tmp_path, monkeypatch):
    custom_dir = tmp_path / "data_root"
    monkeypatch.setenv("HABITS_DATA_DIR", str(custom_dir))

    resolved = app_paths.resolve_data_path("nested", "habits.db")
    assert resolved == custom_dir / "nested" / "habits.db"
    # Parent directories should not be created until requested
    assert not resolved.parent.exists()

    ensured = app_paths.resolve_data_path("nested", "habits.db", create_parents=True)
    assert ensured == resolved
    assert ensured.parent.exists()


def test_default_root_is_repo_data_dir(monkeypatch):
    monkeypatch.delenv("HABITS_DATA_DIR", raising=False)
    resolved = app_paths.resolve_data_path("habits.db")
    assert resolved.parent.name == "data"
    assert resolved.parent.parent == app_paths.Path(app_paths.__file__).resolve().parent.parent


def test_absolute_path_bypasses_data_root(tmp_path, monkeypatch):
    monkeypatch.setenv("HABITS_DATA_DIR", str(tmp_path / "root"))
    target = tmp_path / "elsewhere" / "habits.db"

    assert app_paths.resolve_data_path(str(target)) == target
