from __future__ import annotations

import json
from pathlib import Path

from tools.margin_quote import main

NOW = 1_764_547_200
EXPIRY = NOW + 60 * 86_400

_CONFIG = """\
owner: admin
assets:
  - {tag: 1, symbol: WETH, decimals: 18}
  - {tag: 2, symbol: USDC, decimals: 6}
products:
  - underlying: 1
    strike: 2
    collateral: 2
    discount_period_upper: 2592000
    discount_period_lower: 86400
    discount_ratio_upper: 5000
    discount_ratio_lower: 1000
    shock_ratio: 2000
"""


def _write_config(tmp_path: Path) -> Path:
    path = tmp_path / "margin.yaml"
    path.write_text(_CONFIG, encoding="utf-8")
    return path


def _run(capsys, argv: list[str]) -> tuple[int, str, str]:
    rc = main(argv)
    captured = capsys.readouterr()
    return rc, captured.out, captured.err


def test_quote_naked_call(tmp_path: Path, capsys) -> None:
    cfg = _write_config(tmp_path)
    rc, out, _ = _run(capsys, [
        "--config", str(cfg), "--product", "1:2:2", "--call", "4000",
        "--spot", "3500", "--expiry", str(EXPIRY), "--now", str(NOW),
    ])
    assert rc == 0
    quote = json.loads(out)
    assert quote == {
        "product_id": "0x1020206",
        "time_decay_bps": 5000,
        "min_collateral_in_strike": 2_200_000_000,
        "min_collateral": 2_200_000_000,
    }


def test_quote_call_spread_caps_requirement(tmp_path: Path, capsys) -> None:
    cfg = _write_config(tmp_path)
    rc, out, _ = _run(capsys, [
        "--config", str(cfg), "--product", "1:2:2", "--call", "4000:4500", "--amount", "2",
        "--spot", "3500", "--expiry", str(EXPIRY), "--now", str(NOW),
    ])
    assert rc == 0
    assert json.loads(out)["min_collateral"] == 1_000_000_000


def test_unknown_product_exit_code(tmp_path: Path, capsys) -> None:
    cfg = _write_config(tmp_path)
    rc, _, err = _run(capsys, [
        "--config", str(cfg), "--product", "1:2:1", "--put", "3000",
        "--spot", "3500", "--expiry", str(EXPIRY), "--now", str(NOW),
    ])
    assert rc == 2
    assert "margin_quote error" in err


def test_bad_decimal_exit_code(tmp_path: Path, capsys) -> None:
    cfg = _write_config(tmp_path)
    rc, _, err = _run(capsys, [
        "--config", str(cfg), "--product", "1:2:2", "--call", "4000.0000001",
        "--spot", "3500", "--expiry", str(EXPIRY), "--now", str(NOW),
    ])
    assert rc == 2
    assert "more than 6 decimals" in err
