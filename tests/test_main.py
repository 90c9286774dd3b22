"""CLI subcommands, upstream stubbed with respx."""

import csv
import io
import json

import respx

import main

BASE = "http://soc.test/api/v1"

BILANS = {"bilans": [{"annee": 2023, "ca": 2_500_000}]}


def test_lookup_prints_json(capsys):
    with respx.mock(assert_all_called=False) as router:
        router.get(f"{BASE}/entreprise/428723266/bilans").respond(200, json=BILANS)

        code = main.main(["lookup", "428 723 266"])

    assert code == 0
    out = json.loads(capsys.readouterr().out)
    assert out["year"] == 2023
    assert out["ca"] == 2500
    assert out["formatted"] == "CA (2023) = 2500 K€"


def test_lookup_invalid_identifier_exits_2(capsys):
    with respx.mock() as router:
        assert main.main(["lookup", "12"]) == 2
    assert not router.calls
    assert "Invalid identifier" in capsys.readouterr().err


def test_lookup_upstream_failure_exits_1(capsys):
    with respx.mock(assert_all_called=False) as router:
        router.get(url__regex=rf"{BASE}/entreprise/428723266/.*").respond(401, json={"message": "bad key"})

        code = main.main(["lookup", "428723266"])

    assert code == 1
    assert '"status": 401' in capsys.readouterr().err


def test_batch_writes_with_ca_file(tmp_path):
    src = tmp_path / "clients.csv"
    src.write_text("Nom;SIREN\nACME;428 723 266\nBad;abc\n", encoding="utf-8")

    with respx.mock(assert_all_called=False) as router:
        router.get(f"{BASE}/entreprise/428723266/bilans").respond(200, json=BILANS)

        code = main.main(["batch", str(src), "--delay-ms", "0"])

    assert code == 0
    dest = tmp_path / "clients_with_CA.csv"
    assert dest.exists()
    rows = list(csv.DictReader(io.StringIO(dest.read_bytes().decode("utf-8-sig"))))
    assert [(r["Nom"], r["Year"], r["Revenue (thousands)"]) for r in rows] == [
        ("ACME", "2023", "2500"),
        ("Bad", "", "SIREN invalide"),
    ]


def test_batch_unknown_column_exits_2(tmp_path):
    src = tmp_path / "clients.csv"
    src.write_text("SIREN\n428723266\n", encoding="utf-8")

    assert main.main(["batch", str(src), "--column", "Missing"]) == 2
    assert not (tmp_path / "clients_with_CA.csv").exists()
