"""Entity store idempotency tests"""

from chainstream.models.alerts import ALERT_INACTIVE, AlertSubscription
from chainstream.models.entities import STATUS_ENRICHED, STATUS_FAILED, STATUS_PENDING
from chainstream.models.runs import RUN_FAILURE, TaskRun
from chainstream.tests.fakes import ADDR_A, ADDR_B, BLOCK_NUMBER, TX_1


class TestFindOrCreate:
    """Find-or-create collapses duplicates onto one row"""

    def test_block_seen_twice_has_one_row(self, store):
        first, created_first = store.ensure_block(BLOCK_NUMBER)
        second, created_second = store.ensure_block(BLOCK_NUMBER)

        assert created_first is True
        assert created_second is False
        assert first.id == second.id
        assert store.count("block") == 1
        assert first.status == STATUS_PENDING

    def test_address_hash_is_normalized(self, store):
        upper, created = store.ensure_address(ADDR_A)
        lower, created_again = store.ensure_address(ADDR_A.lower())

        assert created is True
        assert created_again is False
        assert upper.id == lower.id
        assert upper.address_hash == ADDR_A.lower()

    def test_transaction_belongs_to_block(self, store):
        block, _ = store.ensure_block(BLOCK_NUMBER)
        tx, created = store.ensure_transaction(TX_1, block.id)
        again, created_again = store.ensure_transaction(TX_1.upper().replace("0X", "0x"), block.id)

        assert created is True
        assert created_again is False
        assert tx.block_id == block.id
        assert again.id == tx.id

    def test_edge_is_unique_per_pair(self, store):
        block, _ = store.ensure_block(BLOCK_NUMBER)
        tx, _ = store.ensure_transaction(TX_1, block.id)
        address, _ = store.ensure_address(ADDR_A)

        assert store.link_address_transaction(address.id, tx.id) is True
        assert store.link_address_transaction(address.id, tx.id) is False
        assert store.count_edges() == 1
        assert [t.id for t in store.transactions_for_address(address.id)] == [tx.id]
        assert [a.id for a in store.addresses_for_transaction(tx.id)] == [address.id]

    def test_smart_contract_shadows_address(self, store):
        contract, created = store.ensure_smart_contract(ADDR_B)
        assert created is True
        assert store.find_by_key("smart_contract", ADDR_B).id == contract.id

    def test_token_is_unique_per_address(self, store):
        token, created = store.ensure_token(ADDR_B)
        again, created_again = store.ensure_token(ADDR_B.lower())

        assert created is True
        assert created_again is False
        assert again.id == token.id
        assert token.address_hash == ADDR_B.lower()
        assert token.status == STATUS_PENDING
        assert store.count("token") == 1


class TestStateTransitions:
    """Raw data is replaced wholesale or left untouched"""

    def test_save_raw_data_marks_enriched(self, store):
        address, _ = store.ensure_address(ADDR_A)
        store.save_raw_data("address", address.id, {"info": {"coin_balance": "1"}})
        store.save_raw_data("address", address.id, {"info": {"is_contract": False}})

        refreshed = store.get("address", address.id)
        assert refreshed.status == STATUS_ENRICHED
        assert refreshed.raw_data == {"info": {"is_contract": False}}

    def test_mark_failed_keeps_prior_raw_data(self, store):
        address, _ = store.ensure_address(ADDR_A)
        store.save_raw_data("address", address.id, {"info": {"coin_balance": "1"}})
        store.mark_failed("address", address.id, "TransientNetworkError: timeout")

        refreshed = store.get("address", address.id)
        assert refreshed.status == STATUS_FAILED
        assert refreshed.raw_data == {"info": {"coin_balance": "1"}}
        assert "timeout" in refreshed.error_message

    def test_block_summary(self, store):
        block, _ = store.ensure_block(BLOCK_NUMBER)
        store.save_block_summary(block.id, "Block 18500000 was mined.")
        assert store.find_by_key("block", str(BLOCK_NUMBER)).summary == "Block 18500000 was mined."


class TestAlertsRunsCheckpoints:
    def test_active_alerts_match_case_insensitively(self, store, session_factory):
        with session_factory() as session:
            session.add(AlertSubscription(address_hash=ADDR_A, webhook_url="http://hooks.test/a"))
            session.add(
                AlertSubscription(address_hash=ADDR_B, webhook_url="http://hooks.test/b", status=ALERT_INACTIVE)
            )
            session.commit()

        alerts = store.active_alerts_for([ADDR_A.lower(), ADDR_B.lower()])
        assert [a.webhook_url for a in alerts] == ["http://hooks.test/a"]
        assert store.active_alerts_for([]) == []

    def test_touch_alert_sets_last_triggered(self, store, session_factory):
        with session_factory() as session:
            alert = AlertSubscription(address_hash=ADDR_A, webhook_url="http://hooks.test/a")
            session.add(alert)
            session.commit()
            alert_id = alert.id

        store.touch_alert(alert_id)
        assert store.get_alert(alert_id).last_triggered_at is not None

    def test_task_run_ledger(self, store, session_factory):
        run_id = store.start_run("address", ADDR_A)
        store.finish_run(run_id, RUN_FAILURE, 3, "TransientNetworkError: timeout")

        with session_factory() as session:
            run = session.get(TaskRun, run_id)
            assert run.status == RUN_FAILURE
            assert run.attempts == 3
            assert run.ended_at is not None

    def test_checkpoint_only_moves_forward(self, store):
        assert store.load_stream_checkpoint("heads") is None
        store.save_stream_checkpoint("heads", 100)
        store.save_stream_checkpoint("heads", 105)
        store.save_stream_checkpoint("heads", 103)
        assert store.load_stream_checkpoint("heads") == 105
