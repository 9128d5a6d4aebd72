import io
import json
from datetime import date
from types import SimpleNamespace

import pytest
from openpyxl import Workbook

from painel.utils.parsers import coerce_date, is_complete, parse_file_to_rows
from painel.utils.phones import (
    format_phone,
    normalize_phone,
    phone_from_jid,
    replace_variables,
    search_variants,
    validate_phone,
)


def test_normalize_phone_adds_country_code():
    assert normalize_phone("(46) 99999-8888") == "5546999998888"
    assert normalize_phone("4633334444") == "554633334444"
    assert normalize_phone("5546999998888") == "5546999998888"
    assert normalize_phone("") == ""


def test_normalize_phone_recovers_long_ids():
    assert normalize_phone("55469999988881234") == "5546999998888"
    assert normalize_phone("1234546999998888") == "5546999998888"


def test_validate_and_format_phone():
    assert validate_phone("46 99999-8888")
    assert validate_phone("+55 46 99999-8888")
    assert not validate_phone("12345")
    assert not validate_phone(None)
    assert format_phone("46999998888") == "+55 (46) 99999-8888"
    assert format_phone("4633334444") == "+55 (46) 3333-4444"


def test_phone_from_jid_and_search_variants():
    assert phone_from_jid("5546999998888@s.whatsapp.net") == "5546999998888"
    assert phone_from_jid("5546999998888:12@s.whatsapp.net") == "5546999998888"
    assert search_variants("+55 46 99999-8888") == ["5546999998888", "46999998888"]
    assert search_variants("46999998888") == ["46999998888"]
    assert search_variants("") == []


def test_replace_variables_fills_pedido_fields():
    pedido = SimpleNamespace(
        numero_pedido="1001",
        nome_cliente="Ana",
        codigo_produto="CAN-01",
        data_pedido=date(2024, 3, 5),
        observacao=None,
        foto_aprovacao=[],
    )
    out = replace_variables("Olá {nome_cliente}, pedido {numero_pedido} de {data_pedido}: {foto_aprovacao}{observacao}", pedido)
    assert out == "Olá Ana, pedido 1001 de 05/03/2024: [Sem foto]"
    assert replace_variables(None, pedido) is None


def test_parse_csv_with_semicolons_and_aliases():
    csv = "Número;Cliente;Código Produto;Telefone;Data\n1001;Ana;CAN-01;46999998888;05/03/2024\n1002;;CAN-02;;\n".encode("utf-8")
    rows = parse_file_to_rows(csv, "pedidos.csv")
    assert rows[0]["numero_pedido"] == "1001"
    assert rows[0]["data_pedido"] == date(2024, 3, 5)
    assert is_complete(rows[0])
    assert not is_complete(rows[1])


def test_parse_json_accepts_wrapped_list():
    data = json.dumps({"pedidos": [{"numero_pedido": "7", "nome_cliente": "Bia", "codigo_produto": "X"}]}).encode()
    rows = parse_file_to_rows(data, "pedidos.json")
    assert rows[0]["nome_cliente"] == "Bia"
    assert rows[0]["telefone"] is None


def test_parse_xlsx_reads_first_sheet():
    wb = Workbook()
    ws = wb.active
    ws.append(["Numero", "Cliente", "Produto", "Telefone", "Data"])
    ws.append([2001, "Caio", "CAN-09", 46988887777, date(2024, 1, 2)])
    ws.append([None, None, None, None, None])
    buf = io.BytesIO()
    wb.save(buf)
    rows = parse_file_to_rows(buf.getvalue(), "Pedidos.XLSX")
    assert len(rows) == 1
    assert rows[0]["numero_pedido"] == "2001"
    assert rows[0]["telefone"] == "46988887777"
    assert rows[0]["data_pedido"] == date(2024, 1, 2)


def test_coerce_date_variants():
    assert coerce_date(45000) == date(2023, 3, 15)
    assert coerce_date("2024-02-29") == date(2024, 2, 29)
    assert coerce_date("not a date") is None
    assert coerce_date("") is None


def test_unsupported_file_type():
    with pytest.raises(ValueError):
        parse_file_to_rows(b"x", "pedidos.txt")


def test_parse_xlsx_rejects_corrupt_files():
    with pytest.raises(ValueError, match="invalid XLSX file"):
        parse_file_to_rows(b"not a zip", "pedidos.xlsx")

    buf = io.BytesIO()
    Workbook().save(buf)
    assert parse_file_to_rows(buf.getvalue(), "vazio.xlsx") == []
