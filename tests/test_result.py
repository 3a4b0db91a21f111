from fizzy_mcp.result import Err, Ok, is_err, is_ok


def test_ok_and_err():
    assert is_ok(Ok(1))
    assert is_err(Err("boom"))
    assert not is_ok(Err("boom"))


def test_results_compare_by_value():
    assert Ok({"id": "b1"}) == Ok({"id": "b1"})
    assert Ok(None) != Err(None)
