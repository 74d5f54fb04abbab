from conftest import DIRECTORY, order_row
from src.domain.extractor import OrderExtractor, build_client_map, parse_number
from src.domain import SheetLayout

HEADER = ["Статус", "", "Трек", "Код", "Вес", "", "", "Цена"]


def client_map():
    return build_client_map(DIRECTORY)


def test_client_map_is_built_by_header_name():
    rows = [
        ["Пункт выдачи", "Номер телефона", "181", "Ф.И.О"],
        ["Ош", "555123456", "K7", "Асель"],
        ["Бишкек", "700000000", "", "Без кода"],
    ]

    clients = build_client_map(rows)

    assert list(clients) == ["K7"]
    assert clients["K7"].full_name == "Асель"
    assert clients["K7"].phone_number == "555123456"
    assert clients["K7"].pickup_point == "Ош"


def test_client_map_without_code_column_is_empty():
    assert build_client_map([["Ф.И.О", "Номер телефона"], ["A", "1"]]) == {}
    assert build_client_map([]) == {}


def test_bad_rows_are_skipped_and_counted():
    rows = [
        HEADER,
        order_row("T-1", "C1", "2,5", "1 500"),
        ["Готов", "", "T-2"],
        order_row("", "C1"),
        order_row("T-3", ""),
        order_row("T-4", "NOPE"),
        order_row("T-5", "C2"),
    ]

    order_sets, stats = OrderExtractor().extract(rows, client_map())

    assert stats.total_rows == 6
    assert stats.extracted == 2
    assert stats.skipped == 4
    assert stats.skip_reasons == [
        "Row 3: insufficient columns (3/4)",
        "Row 4: missing tracking number",
        "Row 5: missing client code",
        "Row 6: unknown client code 'NOPE'",
    ]
    assert set(order_sets) == {"C1", "C2"}


def test_order_fields_are_parsed():
    rows = [HEADER, order_row("T-1", "C1", "2,5", "1500"), order_row("T-2", "C1", "abc", "", status="")]

    order_sets, _ = OrderExtractor().extract(rows, client_map())

    first, second = order_sets["C1"].orders[1], order_sets["C1"].orders[2]
    assert first.weight == 2.5
    assert first.price == 1500.0
    assert first.status == "Готов"
    assert second.weight is None
    assert second.price is None
    assert second.status == "Неизвестно"


def test_order_ids_are_sequential_per_client():
    rows = [
        HEADER,
        order_row("T-1", "C1"),
        order_row("T-2", "C2"),
        order_row("T-3", "C1"),
    ]

    order_sets, _ = OrderExtractor().extract(rows, client_map())

    assert list(order_sets["C1"].orders) == [1, 2]
    assert order_sets["C1"].tracking_numbers == ["T-1", "T-3"]
    assert list(order_sets["C2"].orders) == [1]


def test_short_row_with_only_required_columns_is_accepted():
    rows = [HEADER, ["В пути", "", "T-1", "C1"]]

    order_sets, stats = OrderExtractor().extract(rows, client_map())

    assert stats.skipped == 0
    assert order_sets["C1"].orders[1].weight is None


def test_custom_column_layout():
    columns = SheetLayout(tracking_column=0, client_code_column=1, status_column=2,
                          weight_column=3, price_column=4, min_columns=2)
    rows = [["t", "c"], ["T-9", "C1"]]

    order_sets, _ = OrderExtractor(columns).extract(rows, client_map())

    assert order_sets["C1"].orders[1].tracking_number == "T-9"
    assert order_sets["C1"].orders[1].status == "Неизвестно"


def test_parse_number():
    assert parse_number("2,5") == 2.5
    assert parse_number(" 1 200,75 ") == 1200.75
    assert parse_number(3) == 3.0
    assert parse_number("") is None
    assert parse_number(None) is None
    assert parse_number("n/a") is None
    assert parse_number("nan") is None
