from main import _parse_args


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080


def test_admin_subcommand_accepts_service_url() -> None:
    args = _parse_args(["admin", "--service-url", "http://users.internal:9000"])
    assert args.command == "admin"
    assert args.service_url == "http://users.internal:9000"


def test_config_option_is_available_on_every_command() -> None:
    assert _parse_args(["init-db", "--config", "stagecontrol.yaml"]).config == "stagecontrol.yaml"
    assert _parse_args(["--config", "serve.yaml"]).config == "serve.yaml"
    assert _parse_args(["admin"]).config is None
