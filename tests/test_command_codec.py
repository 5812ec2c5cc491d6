"""Tests for the command records and text formats shared with the MT4 EA."""
import json

import pytest

from src.bridge.command_codec import (
    ACTION_PLACE_ORDER,
    DEFAULT_INITIAL_DEPOSIT,
    DEFAULT_MODEL,
    decode_result,
    extract_json_value,
    format_kv,
    format_kv_blocks,
    parse_compile_log,
    parse_experts_list,
    parse_kv_blocks,
    parse_kv_text,
    validate_backtest_dict,
    validate_close_dict,
    validate_ea_name,
    validate_order_dict,
)


def _backtest(**overrides):
    data = {
        "expert": "MACross",
        "symbol": "EURUSD",
        "timeframe": "H1",
        "from_date": "2024-01-01",
        "to_date": "2024-03-31",
    }
    data.update(overrides)
    return data


def test_validate_order_fills_defaults_and_uppercases():
    cmd = validate_order_dict({"symbol": "EURUSD", "operation": "buy", "lots": 0.1})
    assert cmd.operation == "BUY"
    assert cmd.price == 0.0
    assert cmd.stop_loss == 0.0
    assert cmd.take_profit == 0.0
    assert cmd.comment == ""

    obj = json.loads(cmd.to_json())
    assert obj["action"] == ACTION_PLACE_ORDER
    assert obj["symbol"] == "EURUSD"
    assert obj["lots"] == 0.1
    assert isinstance(obj["timestamp"], int)


@pytest.mark.parametrize(
    "data, field",
    [
        ({"operation": "BUY", "lots": 0.1}, "symbol"),
        ({"symbol": "EURUSD", "operation": "HOLD", "lots": 0.1}, "operation"),
        ({"symbol": "EURUSD", "operation": "BUY"}, "lots"),
        ({"symbol": "EURUSD", "operation": "BUY", "lots": 0}, "lots"),
        ({"symbol": "EURUSD", "operation": "BUY", "lots": "abc"}, "lots"),
    ],
)
def test_validate_order_rejects(data, field):
    with pytest.raises(ValueError) as exc:
        validate_order_dict(data)
    assert field in str(exc.value)


def test_validate_close_ticket():
    assert validate_close_dict({"ticket": 123456}).ticket == 123456
    assert validate_close_dict({"ticket": "42"}).ticket == 42
    for bad in ({}, {"ticket": 0}, {"ticket": 1.5}, {"ticket": "x"}, {"ticket": True}):
        with pytest.raises(ValueError):
            validate_close_dict(bad)


def test_validate_backtest_defaults():
    cmd = validate_backtest_dict(_backtest())
    assert cmd.initial_deposit == DEFAULT_INITIAL_DEPOSIT
    assert cmd.model == DEFAULT_MODEL
    assert cmd.optimization is False
    assert cmd.parameters == {}
    assert cmd.to_dict()["action"] == "RUN_BACKTEST"


def test_validate_backtest_rejects_bad_values():
    with pytest.raises(ValueError, match="from_date"):
        validate_backtest_dict(_backtest(from_date="2024-05-01"))
    with pytest.raises(ValueError, match="YYYY-MM-DD"):
        validate_backtest_dict(_backtest(to_date="31/03/2024"))
    with pytest.raises(ValueError, match="timeframe"):
        validate_backtest_dict(_backtest(timeframe="H2"))
    with pytest.raises(ValueError, match="model"):
        validate_backtest_dict(_backtest(model="Random"))
    with pytest.raises(ValueError, match="parameters"):
        validate_backtest_dict(_backtest(parameters=[1, 2]))


def test_validate_ea_name():
    assert validate_ea_name("MyEA.mq4") == "MyEA"
    assert validate_ea_name(" Trend_Follow-2 ") == "Trend_Follow-2"
    for bad in ("", "../evil", "a/b", "x\\y", None):
        with pytest.raises(ValueError):
            validate_ea_name(bad)


def test_parse_kv_text_splits_on_first_equals():
    text = "balance=10000.00\nequity = 9950.5\nformula=a=b\nnovalue=\n=nokey\njunk line"
    assert parse_kv_text(text) == {"balance": "10000.00", "equity": "9950.5", "formula": "a=b"}


def test_parse_kv_blocks_three_records():
    text = "ticket=1\nsymbol=EURUSD\n---\nticket=2\nsymbol=GBPUSD\n---\nticket=3\nsymbol=USDJPY\n"
    records = parse_kv_blocks(text)
    assert len(records) == 3
    assert [r["ticket"] for r in records] == ["1", "2", "3"]
    assert records[2]["symbol"] == "USDJPY"


def test_parse_kv_blocks_discards_empty_blocks():
    assert parse_kv_blocks("---\n\n---\nticket=9\n---\n") == [{"ticket": "9"}]
    assert parse_kv_blocks("") == []


def test_format_kv_matches_parser():
    text = format_kv_blocks([{"ticket": 1, "open": True}, {"ticket": 2, "open": False}])
    assert text == "ticket=1\nopen=true\n---\nticket=2\nopen=false"
    assert format_kv({"lots": "0.10"}) == "lots=0.10"


def test_parse_experts_list():
    text = "MACross|Moving average cross|2024.01.02 10:00\nBareEA\n\n"
    experts = parse_experts_list(text)
    assert experts[0] == {"name": "MACross", "description": "Moving average cross", "modified": "2024.01.02 10:00"}
    assert experts[1] == {"name": "BareEA", "description": "", "modified": ""}


def test_decode_result_json_and_kv():
    assert decode_result('{"success": true, "ticket": 7}') == {"success": True, "ticket": 7}
    assert decode_result("success=true\nticket=7") == {"success": "true", "ticket": "7"}
    with pytest.raises(ValueError):
        decode_result('{"success": tr')


def test_extract_json_value_raw_tokens():
    text = '{"symbol":"EURUSD","lots":0.10}'
    assert extract_json_value(text, "symbol") == "EURUSD"
    assert extract_json_value(text, "lots") == "0.10"
    assert extract_json_value(text, "ticket") == ""


def test_extract_json_value_escapes_and_spacing():
    text = '{"comment": "say \\"hi\\"", "ticket" : 12 , "flag":true}'
    assert extract_json_value(text, "comment") == 'say "hi"'
    assert extract_json_value(text, "ticket") == "12"
    assert extract_json_value(text, "flag") == "true"


def test_parse_compile_log_counts():
    log = "compiling 'MyEA.mq4'...\nResult: 2 error(s), 1 warning(s), 0 msec elapsed"
    assert parse_compile_log(log) == (2, 1)
    assert parse_compile_log("0 error(s), 0 warning(s)") == (0, 0)
    assert parse_compile_log("no summary") == (0, 0)
