from fizzy_mcp.session import (
    AccountRef,
    SessionContext,
    UserRef,
    clear_session,
    get_default_account,
    get_session,
    set_session,
)


def make_context(slug: str, name: str = "Acme") -> SessionContext:
    return SessionContext(
        account=AccountRef(slug=slug, name=name, id="acc_123"),
        user=UserRef(id="user_456", name="Jane Doe", role="owner"),
    )


def test_no_session_by_default():
    assert get_session() is None
    assert get_default_account() is None


def test_set_and_get_session():
    context = make_context("897362094")
    set_session(context)
    assert get_session() == context
    assert get_default_account() == "897362094"
    assert context.source == "explicit"


def test_set_overwrites_previous_session():
    set_session(make_context("111", "First"))
    set_session(make_context("222", "Second"))
    assert get_default_account() == "222"
    assert get_session().account.name == "Second"


def test_clear_session():
    set_session(make_context("897362094"))
    clear_session()
    assert get_session() is None
    assert get_default_account() is None
