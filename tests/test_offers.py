import pytest
from fastapi import status
from pymongo.errors import AutoReconnect

from realestate import crud, ledger
from realestate.errors import Conflict, InvalidArgument, NotFound
from realestate.schemas import ListingCreate, OfferCreate


def create_verified_listing(store, agent_email="agent@example.com", title="Lake House"):
    listing = crud.create_listing(
        store,
        agent_email,
        ListingCreate(
            title=title,
            location="Dhaka",
            min_price=250000,
            max_price=350000,
            agent_name="Agent A",
        ),
    )
    crud.set_verification(store, str(listing["_id"]), "verified")
    return str(listing["_id"])


def submit(store, property_id, buyer, amount):
    offer = ledger.submit_offer(
        store, buyer, OfferCreate(property_id=property_id, amount=amount)
    )
    return str(offer["_id"])


def status_of(store, offer_id):
    return ledger.get_offer(store, offer_id)["status"]


def test_submit_resolves_agent_and_snapshots_listing(store):
    property_id = create_verified_listing(store)
    offer_id = submit(store, property_id, "buyer@example.com", 300000)

    offer = ledger.get_offer(store, offer_id)
    assert offer["status"] == "pending"
    assert offer["agentEmail"] == "agent@example.com"
    assert offer["agentName"] == "Agent A"
    assert offer["title"] == "Lake House"
    assert offer["propertyId"] == property_id


def test_submit_requires_verified_listing(store):
    listing = crud.create_listing(
        store,
        "agent@example.com",
        ListingCreate(title="Pending", location="X", min_price=1, max_price=2),
    )
    with pytest.raises(InvalidArgument):
        submit(store, str(listing["_id"]), "buyer@example.com", 10)


def test_submit_rejects_non_positive_amount(store):
    property_id = create_verified_listing(store)
    offer_in = OfferCreate.model_construct(property_id=property_id, amount=0)
    with pytest.raises(InvalidArgument):
        ledger.submit_offer(store, "buyer@example.com", offer_in)


def test_agent_cannot_offer_on_own_listing(store):
    property_id = create_verified_listing(store)
    with pytest.raises(InvalidArgument):
        submit(store, property_id, "agent@example.com", 100)


def test_accept_rejects_pending_siblings(store):
    property_id = create_verified_listing(store)
    other_property = create_verified_listing(store, title="Other")
    first = submit(store, property_id, "b@example.com", 300000)
    second = submit(store, property_id, "c@example.com", 310000)
    third = submit(store, property_id, "d@example.com", 320000)
    unrelated = submit(store, other_property, "c@example.com", 1000)

    result = ledger.accept_offer(store, first, "agent@example.com")

    assert result["rejectedCount"] == 2
    assert "warning" not in result
    assert status_of(store, first) == "accepted"
    assert status_of(store, second) == "rejected"
    assert status_of(store, third) == "rejected"
    assert status_of(store, unrelated) == "pending"
    listing = crud.get_listing(store, property_id)
    assert listing["acceptedOfferId"] == first


def test_accept_unknown_offer_is_not_found(store):
    with pytest.raises(NotFound):
        ledger.accept_offer(store, "64b7f0c2a1b2c3d4e5f60718")


def test_accept_by_other_agent_is_not_found(store):
    property_id = create_verified_listing(store)
    offer_id = submit(store, property_id, "b@example.com", 10)
    with pytest.raises(NotFound):
        ledger.accept_offer(store, offer_id, "someone@example.com")


def test_only_one_offer_can_hold_a_listing(store):
    property_id = create_verified_listing(store)
    first = submit(store, property_id, "b@example.com", 10)
    ledger.accept_offer(store, first)

    # an offer that slipped in after the acceptance stays pending
    late = store.offers.insert_one(
        {
            "propertyId": property_id,
            "agentEmail": "agent@example.com",
            "buyerEmail": "late@example.com",
            "amount": 20,
            "status": "pending",
        }
    ).inserted_id

    with pytest.raises(Conflict):
        ledger.accept_offer(store, str(late))
    assert status_of(store, str(late)) == "pending"
    accepted = store.offers.count_documents(
        {"propertyId": property_id, "status": {"$in": ["accepted", "bought"]}}
    )
    assert accepted == 1


def test_submit_after_acceptance_conflicts(store):
    property_id = create_verified_listing(store)
    ledger.accept_offer(store, submit(store, property_id, "b@example.com", 10))
    with pytest.raises(Conflict):
        submit(store, property_id, "c@example.com", 20)


def test_sibling_rejection_failure_is_reported(store, monkeypatch):
    property_id = create_verified_listing(store)
    first = submit(store, property_id, "b@example.com", 10)
    second = submit(store, property_id, "c@example.com", 20)

    def broken_update_many(*args, **kwargs):
        raise AutoReconnect("connection lost")

    monkeypatch.setattr(store.offers, "update_many", broken_update_many)
    result = ledger.accept_offer(store, first)

    assert "warning" in result
    assert status_of(store, first) == "accepted"
    assert status_of(store, second) == "pending"

    monkeypatch.undo()
    again = ledger.accept_offer(store, first)
    assert again["rejectedCount"] == 1
    assert status_of(store, second) == "rejected"


def test_sibling_rejection_is_retried(store, monkeypatch):
    property_id = create_verified_listing(store)
    first = submit(store, property_id, "b@example.com", 10)
    second = submit(store, property_id, "c@example.com", 20)
    real_update_many = store.offers.update_many
    calls = []

    def flaky_update_many(*args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise AutoReconnect("blip")
        return real_update_many(*args, **kwargs)

    monkeypatch.setattr(store.offers, "update_many", flaky_update_many)
    result = ledger.accept_offer(store, first)

    assert "warning" not in result
    assert len(calls) == 2
    assert status_of(store, second) == "rejected"


def test_reject_pending_offer(store):
    property_id = create_verified_listing(store)
    offer_id = submit(store, property_id, "b@example.com", 10)
    assert ledger.reject_offer(store, offer_id)["modifiedCount"] == 1
    assert status_of(store, offer_id) == "rejected"


def test_reject_terminal_offer_conflicts(store):
    property_id = create_verified_listing(store)
    offer_id = submit(store, property_id, "b@example.com", 10)
    ledger.reject_offer(store, offer_id)
    with pytest.raises(Conflict):
        ledger.reject_offer(store, offer_id)
    with pytest.raises(Conflict):
        ledger.accept_offer(store, offer_id)


def test_rejecting_accepted_offer_frees_listing(store):
    property_id = create_verified_listing(store)
    first = submit(store, property_id, "b@example.com", 10)
    ledger.accept_offer(store, first)
    ledger.reject_offer(store, first)

    assert "acceptedOfferId" not in crud.get_listing(store, property_id)
    second = submit(store, property_id, "c@example.com", 20)
    ledger.accept_offer(store, second)
    assert status_of(store, second) == "accepted"


def test_rejecting_half_accepted_offer_frees_listing(store, monkeypatch):
    property_id = create_verified_listing(store)
    first = submit(store, property_id, "b@example.com", 10)

    def broken_update_one(*args, **kwargs):
        raise AutoReconnect("connection lost")

    monkeypatch.setattr(store.offers, "update_one", broken_update_one)
    with pytest.raises(AutoReconnect):
        ledger.accept_offer(store, first)
    monkeypatch.undo()

    assert status_of(store, first) == "pending"
    assert crud.get_listing(store, property_id)["acceptedOfferId"] == first

    ledger.reject_offer(store, first)

    assert "acceptedOfferId" not in crud.get_listing(store, property_id)
    second = submit(store, property_id, "c@example.com", 20)
    ledger.accept_offer(store, second)
    assert status_of(store, second) == "accepted"


def test_offer_queries_newest_first(store):
    property_id = create_verified_listing(store)
    older = submit(store, property_id, "b@example.com", 10)
    newer = submit(store, property_id, "b@example.com", 20)

    by_buyer = [str(o["_id"]) for o in ledger.offers_by_buyer(store, "b@example.com")]
    by_agent = [str(o["_id"]) for o in ledger.offers_by_agent(store, "agent@example.com")]
    assert by_buyer == [newer, older]
    assert by_agent == [newer, older]


# HTTP layer


def test_offer_routes(client, store, make_user, headers):
    make_user("agent@example.com", role="agent")
    make_user("buyer@example.com")
    property_id = create_verified_listing(store)

    created = client.post(
        "/offers",
        json={"propertyId": property_id, "amount": 300000, "buyerName": "Buyer"},
        headers=headers("buyer@example.com"),
    )
    assert created.status_code == status.HTTP_201_CREATED
    offer_id = created.json()["insertedId"]

    mine = client.get(
        "/offers", params={"email": "buyer@example.com"}, headers=headers("buyer@example.com")
    )
    assert mine.status_code == status.HTTP_200_OK
    assert [o["_id"] for o in mine.json()] == [offer_id]

    requested = client.get(
        "/agent/requested-offers/agent@example.com", headers=headers("agent@example.com")
    )
    assert requested.status_code == status.HTTP_200_OK
    assert requested.json()[0]["buyerName"] == "Buyer"

    accepted = client.patch(
        f"/agent/accept-offer/{offer_id}", headers=headers("agent@example.com")
    )
    assert accepted.status_code == status.HTTP_200_OK

    detail = client.get(f"/offers/{offer_id}", headers=headers("buyer@example.com"))
    assert detail.json()["status"] == "accepted"


def test_offer_amount_must_be_positive(client, store, make_user, headers):
    make_user("buyer@example.com")
    property_id = create_verified_listing(store)
    resp = client.post(
        "/offers",
        json={"propertyId": property_id, "amount": -5},
        headers=headers("buyer@example.com"),
    )
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert "message" in resp.json()
    assert store.offers.count_documents({}) == 0


def test_other_users_offers_are_forbidden(client, make_user, headers):
    make_user("buyer@example.com")
    resp = client.get(
        "/offers", params={"email": "else@example.com"}, headers=headers("buyer@example.com")
    )
    assert resp.status_code == status.HTTP_403_FORBIDDEN


def test_reject_twice_returns_conflict(client, store, make_user, headers):
    make_user("agent@example.com", role="agent")
    property_id = create_verified_listing(store)
    offer_id = submit(store, property_id, "b@example.com", 10)

    first = client.patch(f"/agent/reject-offer/{offer_id}", headers=headers("agent@example.com"))
    second = client.patch(f"/agent/reject-offer/{offer_id}", headers=headers("agent@example.com"))
    assert first.status_code == status.HTTP_200_OK
    assert second.status_code == status.HTTP_409_CONFLICT
    assert second.json()["message"] == "Offer already resolved"


def test_accept_requires_agent_role(client, store, make_user, headers):
    make_user("buyer@example.com")
    property_id = create_verified_listing(store)
    offer_id = submit(store, property_id, "c@example.com", 10)
    resp = client.patch(f"/agent/accept-offer/{offer_id}", headers=headers("buyer@example.com"))
    assert resp.status_code == status.HTTP_403_FORBIDDEN
    assert status_of(store, offer_id) == "pending"


def test_accept_with_malformed_id(client, make_user, headers):
    make_user("agent@example.com", role="agent")
    resp = client.patch("/agent/accept-offer/not-an-id", headers=headers("agent@example.com"))
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
