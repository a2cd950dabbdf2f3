from orderup.services.aggregation import (
    SelectionLine,
    group_by_participant,
    merge_tally,
    summarize,
)


def line(selection_id, participant, item_id, name, price, quantity=1):
    return SelectionLine(
        selection_id=selection_id,
        participant_name=participant,
        menu_item_id=item_id,
        name=name,
        unit_price=price,
        quantity=quantity,
    )


def test_summary_totals_match_tally_and_participants():
    lines = [
        line("s1", "Alice", "m1", "Americano", 4500),
        line("s2", "Alice", "m2", "Latte", 5000),
        line("s3", "Bob", "m1", "Americano", 4500),
    ]

    summary = summarize(lines)

    assert summary.total_quantity == 3
    assert summary.total_amount == 14000
    assert [(t.name, t.quantity, t.line_total) for t in summary.tally] == [
        ("Americano", 2, 9000),
        ("Latte", 1, 5000),
    ]
    assert sum(group.subtotal for group in summary.participants) == summary.total_amount
    assert sum(group.quantity for group in summary.participants) == summary.total_quantity


def test_merge_tally_keys_on_name_and_price():
    lines = [
        line("s1", "Alice", "m1", "Latte", 5000),
        line("s2", "Bob", "m9", "Latte", 5000, quantity=2),
        line("s3", "Carol", "m3", "Latte", 5500),
    ]

    tally = merge_tally(lines)

    assert [(t.name, t.unit_price, t.quantity) for t in tally] == [
        ("Latte", 5000, 3),
        ("Latte", 5500, 1),
    ]


def test_group_by_participant_uses_exact_names():
    lines = [
        line("s1", "Alice", "m1", "Americano", 4500),
        line("s2", "alice ", "m1", "Americano", 4500),
        line("s3", "Alice", "m2", "Latte", 5000, quantity=2),
    ]

    groups = group_by_participant(lines)

    assert [group.participant_name for group in groups] == ["Alice", "alice "]
    assert [sel.selection_id for sel in groups[0].lines] == ["s1", "s3"]
    assert groups[0].subtotal == 14500
    assert groups[0].quantity == 3


def test_summary_of_no_lines_is_empty():
    summary = summarize([])

    assert summary.participants == []
    assert summary.tally == []
    assert summary.total_quantity == 0
    assert summary.total_amount == 0
