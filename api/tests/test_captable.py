from datetime import date

import pytest
from sqlmodel import Session, select

from equityboard import captable
from equityboard.models import (
    CapTableEntry,
    Company,
    ConvertibleInstrument,
    EquityGrant,
    EquityTransaction,
    FundraisingRound,
    OptionPool,
)

from conftest import auth_headers

AS_OF = date(2024, 1, 15)


def entries():
    return [
        CapTableEntry(company_id=1, holder_name="Olivia Owner", holder_type="founder", equity_type="common_stock", shares=8_000_000),
        CapTableEntry(company_id=1, holder_name="Seed Fund", holder_type="investor", equity_type="preferred_stock", shares=2_000_000),
        CapTableEntry(company_id=1, holder_name="Erin Engineer", holder_type="employee", equity_type="option", shares=500_000),
    ]


def grants():
    return [
        EquityGrant(
            company_id=1,
            recipient_name="Erin Engineer",
            grant_date=date(2022, 1, 15),
            total_shares=1_000_000,
            exercised_shares=10_000,
            vesting_start_date=date(2022, 1, 15),
            vesting_duration_months=48,
            cliff_months=12,
        )
    ]


def pools():
    return [OptionPool(company_id=1, pool_name="2022 Plan", total_shares=2_000_000, granted_shares=1_000_000, available_shares=1_000_000)]


def rounds():
    return [
        FundraisingRound(company_id=1, round_name="Pre-seed", close_date=date(2021, 3, 1), price_per_share=0.25),
        FundraisingRound(company_id=1, round_name="Seed", close_date=date(2022, 9, 1), price_per_share=0.90),
    ]


def instruments():
    return [
        ConvertibleInstrument(company_id=1, investor_name="Angel", principal_amount=50_000, issue_date=date(2023, 1, 1)),
        ConvertibleInstrument(
            company_id=1, investor_name="Old Note", principal_amount=10_000, issue_date=date(2020, 1, 1), status="converted"
        ),
    ]


def test_snapshot_fully_diluted():
    snap = captable.build_snapshot(entries(), grants(), instruments(), pools(), rounds(), "fully_diluted", AS_OF)
    assert snap.issued_shares == 10_000_000
    assert snap.fully_diluted_shares == 13_000_000
    assert snap.denominator == 13_000_000
    assert snap.total_options_granted == 1_000_000
    assert snap.vested_options == 500_000
    assert snap.exercised_options == 10_000
    assert snap.option_pool_total == 2_000_000
    assert snap.option_pool_available == 1_000_000
    assert snap.outstanding_convertible_principal == 50_000
    assert snap.latest_round["round_name"] == "Seed"

    founder = snap.ownership_by_type["founder"]
    assert founder["shares"] == 8_000_000
    assert founder["percentage"] == pytest.approx(8 / 13 * 100)


def test_snapshot_issued_outstanding_uses_issued_denominator():
    snap = captable.build_snapshot(entries(), grants(), instruments(), pools(), rounds(), "issued_outstanding", AS_OF)
    assert snap.denominator == 10_000_000
    assert snap.ownership_by_type["founder"]["percentage"] == pytest.approx(80.0)
    assert snap.ownership_by_type["investor"]["percentage"] == pytest.approx(20.0)


def test_snapshot_skips_option_entries_and_orders_holders():
    snap = captable.build_snapshot(entries(), grants(), [], pools(), [], "issued_outstanding", AS_OF)
    assert "employee" not in snap.ownership_by_type
    assert [h.holder_name for h in snap.holders] == ["Olivia Owner", "Seed Fund"]
    assert sum(h.percentage for h in snap.holders) == pytest.approx(100.0)
    assert snap.latest_round is None


def test_empty_cap_table_has_zero_percentages():
    snap = captable.build_snapshot([], [], [], [], [], "fully_diluted", AS_OF)
    assert snap.denominator == 0
    assert snap.holders == []
    assert snap.ownership_by_type == {}


def seed_cap_table(test_engine, company_id):
    with Session(test_engine) as s:
        for entry in entries():
            entry.company_id = company_id
            s.add(entry)
        for grant in grants():
            grant.company_id = company_id
            s.add(grant)
        for pool in pools():
            pool.company_id = company_id
            s.add(pool)
        safe = ConvertibleInstrument(
            company_id=company_id,
            investor_name="Angel Syndicate",
            investor_email="angels@example.com",
            principal_amount=100_000,
            discount_rate=20,
            issue_date=date(2023, 6, 1),
        )
        s.add(safe)
        s.commit()
        s.refresh(safe)
        return safe.id


def test_cap_table_endpoint_visible_to_members_only(client, board, test_engine):
    seed_cap_table(test_engine, board["company_id"])
    url = f"/api/companies/{board['company_id']}/cap-table?as_of=2024-01-15"

    response = client.get(url, headers=auth_headers(board["alice"]))
    assert response.status_code == 200
    body = response.json()
    assert body["method"] == "fully_diluted"
    assert body["issued_shares"] == 10_000_000
    assert body["vested_options"] == 500_000
    assert body["outstanding_convertible_principal"] == 100_000

    assert client.get(url, headers=auth_headers(board["outsider"])).status_code == 404


def test_cap_table_follows_company_method(client, board, test_engine):
    seed_cap_table(test_engine, board["company_id"])
    with Session(test_engine) as s:
        company = s.get(Company, board["company_id"])
        company.share_calculation_method = "issued_outstanding"
        s.add(company)
        s.commit()

    body = client.get(
        f"/api/companies/{board['company_id']}/cap-table", headers=auth_headers(board["owner"])
    ).json()
    assert body["denominator"] == 10_000_000


def test_equity_grants_endpoint_reports_vesting(client, board, test_engine):
    seed_cap_table(test_engine, board["company_id"])
    response = client.get(
        f"/api/companies/{board['company_id']}/equity-grants?as_of=2024-01-15",
        headers=auth_headers(board["bob"]),
    )
    assert response.status_code == 200
    [grant] = response.json()
    assert grant["vested_shares"] == 500_000
    assert grant["unvested_shares"] == 500_000
    assert grant["cliff_date"] == "2023-01-15"


def convert(client, board, instrument_id, who="owner", **payload):
    return client.post(f"/api/convertibles/{instrument_id}/convert", json=payload, headers=auth_headers(board[who]))


def test_conversion_at_explicit_price_issues_exact_shares_once(client, board, test_engine):
    instrument_id = seed_cap_table(test_engine, board["company_id"])

    response = convert(client, board, instrument_id, price_per_share=2.00, conversion_date="2024-02-01")
    assert response.status_code == 200
    body = response.json()
    assert body["shares"] == 50_000
    assert body["status"] == "converted"

    with Session(test_engine) as s:
        assert s.get(ConvertibleInstrument, instrument_id).status == "converted"
        entry = s.get(CapTableEntry, body["cap_table_entry_id"])
        assert entry.holder_name == "Angel Syndicate"
        assert entry.shares == 50_000
        assert entry.equity_type == "preferred_stock"
        txn = s.get(EquityTransaction, body["transaction_id"])
        assert txn.transaction_type == "conversion"

    again = convert(client, board, instrument_id, price_per_share=2.00)
    assert again.status_code == 409
    with Session(test_engine) as s:
        assert len(s.exec(select(EquityTransaction)).all()) == 1


def test_conversion_derives_price_from_round_and_discount(client, board, test_engine):
    instrument_id = seed_cap_table(test_engine, board["company_id"])
    response = convert(client, board, instrument_id, round_price_per_share=1.00)
    assert response.status_code == 200
    assert response.json()["price_per_share"] == pytest.approx(0.80)
    assert response.json()["shares"] == pytest.approx(125_000)


def test_conversion_rejects_bad_input_without_changes(client, board, test_engine):
    instrument_id = seed_cap_table(test_engine, board["company_id"])
    assert convert(client, board, instrument_id, price_per_share=0).status_code == 400
    assert convert(client, board, instrument_id).status_code == 400
    assert convert(client, board, instrument_id, price_per_share=1.0, equity_type="option").status_code == 400
    with Session(test_engine) as s:
        assert s.get(ConvertibleInstrument, instrument_id).status == "outstanding"
        assert s.exec(select(EquityTransaction)).first() is None


def test_only_owner_can_convert(client, board, test_engine):
    instrument_id = seed_cap_table(test_engine, board["company_id"])
    assert convert(client, board, instrument_id, who="alice", price_per_share=2.0).status_code == 403
    assert convert(client, board, instrument_id, who="outsider", price_per_share=2.0).status_code == 404
    assert convert(client, board, 9999, price_per_share=2.0).status_code == 404
