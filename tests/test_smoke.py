import server


EXPECTED_EXPORTS = (
    "build_token_sink",
    "create_app",
    "main",
    "sweep_expired_states",
)


def test_import_server() -> None:
    for name in EXPECTED_EXPORTS:
        assert hasattr(server, name)
