import importlib.util
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from stagecontrol.database import Database


def _load_script():
    spec = importlib.util.spec_from_file_location("create_user", ROOT / "scripts" / "create_user.py")
    module = importlib.util.module_from_spec(spec)
    assert spec.loader is not None
    spec.loader.exec_module(module)
    return module


def test_create_user_script_inserts_record(tmp_path, capsys):
    db_path = tmp_path / "users.sqlite3"
    script = _load_script()

    exit_code = script.main(["Ann Lee", "ann@x.com", "Admin", "--db", str(db_path)])

    assert exit_code == 0
    assert "Created user" in capsys.readouterr().out
    with Database(db_path) as database:
        users = database.find()
    assert [(user.full_name, user.email, user.role) for user in users] == [("Ann Lee", "ann@x.com", "Admin")]


def test_create_user_script_reports_blank_fields(tmp_path, capsys):
    script = _load_script()

    exit_code = script.main(["Ann Lee", " ", "Admin", "--db", str(tmp_path / "users.sqlite3")])

    assert exit_code == 1
    assert "Error: Full Name, Email, and Role are required" in capsys.readouterr().err
