"""Application tests for pick task generation and completion."""

import pytest
from protean.exceptions import ValidationError

from warehouse.errors import StateConflictError
from warehouse.outbound.order import OrderStatus
from warehouse.outbound.pick_exception import PickExceptionStatus
from warehouse.outbound.pick_task import PickTaskStatus
from warehouse.outbound.wave import WaveStatus


@pytest.fixture()
def wave(floor, stock, make_order):
    """Two orders sharing SKU-1 at A-01, one also needing SKU-2 at A-02."""
    stock("SKU-1", "A-01", 20)
    stock("SKU-2", "A-02", 20)
    make_order({"SKU-1": 3}, allocate=True)
    make_order({"SKU-1": 2, "SKU-2": 4}, allocate=True)
    return floor.create_wave()


def _work(engine, task, picked):
    engine.assign_pick_task(str(task.id), "picker-1")
    engine.start_pick_task(str(task.id))
    return engine.complete_pick_task(str(task.id), picked)


class TestGeneration:
    def test_one_task_per_location_and_sku(self, floor, wave):
        tasks = floor.generate_pick_tasks(str(wave.id))

        assert [(t.sequence, t.location_code, t.sku, t.quantity) for t in tasks] == [
            (1, "A-01", "SKU-1", 5),
            (2, "A-02", "SKU-2", 4),
        ]
        assert all(t.status == PickTaskStatus.PENDING.value for t in tasks)

    def test_generation_starts_picking(self, floor, wave):
        floor.generate_pick_tasks(str(wave.id))

        assert floor.get_wave(str(wave.id)).status == WaveStatus.PICKING.value
        assert {floor.get_order(oid).status for oid in wave.member_ids} == {OrderStatus.PICKING.value}

    def test_generating_again_creates_nothing(self, floor, wave):
        first = floor.generate_pick_tasks(str(wave.id))
        second = floor.generate_pick_tasks(str(wave.id))

        assert [str(t.id) for t in second] == [str(t.id) for t in first]
        assert second[0].quantity == 5

    def test_cancelled_wave_is_rejected(self, floor, wave):
        for order_id in wave.member_ids:
            floor.cancel_order(order_id)

        with pytest.raises(StateConflictError):
            floor.generate_pick_tasks(str(wave.id))


class TestTaskLifecycle:
    def test_task_must_be_started_before_completion(self, floor, wave):
        task = floor.generate_pick_tasks(str(wave.id))[0]
        floor.assign_pick_task(str(task.id), "picker-1")

        with pytest.raises(StateConflictError):
            floor.complete_pick_task(str(task.id), task.quantity)

    def test_worker_is_required(self, floor, wave):
        task = floor.generate_pick_tasks(str(wave.id))[0]
        with pytest.raises(ValidationError):
            floor.assign_pick_task(str(task.id), "")

    def test_overpick_is_rejected_without_touching_stock(self, floor, wave):
        task = floor.generate_pick_tasks(str(wave.id))[0]
        floor.assign_pick_task(str(task.id), "picker-1")
        floor.start_pick_task(str(task.id))

        with pytest.raises(ValidationError):
            floor.complete_pick_task(str(task.id), task.quantity + 1)

        assert floor.get_inventory("SKU-1")["on_hand"] == 20
        assert floor.get_pick_task(str(task.id)).status == PickTaskStatus.IN_PROGRESS.value


class TestCompletion:
    def test_full_pick_commits_stock(self, floor, wave):
        task = floor.generate_pick_tasks(str(wave.id))[0]

        _work(floor, task, 5)

        inventory = floor.get_inventory("SKU-1")
        assert (inventory["on_hand"], inventory["allocated"]) == (15, 0)

    def test_completing_twice_decrements_once(self, floor, wave):
        task = floor.generate_pick_tasks(str(wave.id))[0]
        _work(floor, task, 5)

        again = floor.complete_pick_task(str(task.id), 5)

        assert again.status == PickTaskStatus.COMPLETED.value
        assert floor.get_inventory("SKU-1")["on_hand"] == 15

    def test_short_pick_releases_the_rest(self, floor, wave):
        task = floor.generate_pick_tasks(str(wave.id))[0]

        done = _work(floor, task, 3)

        assert (done.picked_quantity, done.short_quantity) == (3, 2)
        inventory = floor.get_inventory("SKU-1")
        assert (inventory["on_hand"], inventory["allocated"], inventory["available"]) == (17, 0, 17)

        lines = [line for oid in wave.member_ids for line in floor.get_order(oid).lines if line.sku == "SKU-1"]
        assert sum(line.qty_picked for line in lines) == 3
        assert sum(line.qty_short for line in lines) == 2

    def test_wave_is_picked_when_every_task_closes(self, floor, wave, pick_wave):
        pick_wave(wave.id)

        assert floor.get_wave(str(wave.id)).status == WaveStatus.PICKED.value
        assert all(floor.get_order(oid).pick_complete for oid in wave.member_ids)

    def test_wave_stays_picking_while_a_task_is_open(self, floor, wave):
        tasks = floor.generate_pick_tasks(str(wave.id))

        _work(floor, tasks[0], tasks[0].quantity)

        assert floor.get_wave(str(wave.id)).status == WaveStatus.PICKING.value


class TestPickExceptions:
    def test_short_pick_opens_an_exception(self, floor, wave):
        task = floor.generate_pick_tasks(str(wave.id))[0]

        _work(floor, task, 3)

        [exception] = floor.get_pick_exceptions(wave_id=str(wave.id))
        assert (exception.sku, exception.location_code, exception.shortfall) == ("SKU-1", "A-01", 2)
        assert (exception.reason, exception.reported_by) == ("Short pick", "picker-1")
        assert exception.status == PickExceptionStatus.OPEN.value

    def test_completion_reason_is_recorded(self, floor, wave):
        task = floor.generate_pick_tasks(str(wave.id))[0]
        floor.assign_pick_task(str(task.id), "picker-1")
        floor.start_pick_task(str(task.id))

        floor.complete_pick_task(str(task.id), 4, reason="Damaged units in slot", reported_by="lead-1")
        floor.complete_pick_task(str(task.id), 4, reason="Damaged units in slot")

        [exception] = floor.get_pick_exceptions()
        assert (exception.reason, exception.reported_by, exception.shortfall) == ("Damaged units in slot", "lead-1", 1)

    def test_full_pick_opens_nothing(self, floor, wave, pick_wave):
        pick_wave(wave.id)

        assert floor.get_pick_exceptions() == []

    def test_reported_exception_leaves_the_task_alone(self, floor, wave):
        task = floor.generate_pick_tasks(str(wave.id))[1]

        exception = floor.report_pick_exception(str(task.id), "Wrong item in slot", reported_by="picker-2")

        assert (exception.sku, exception.shortfall) == ("SKU-2", 0)
        assert floor.get_pick_task(str(task.id)).status == PickTaskStatus.PENDING.value

    def test_reason_is_required(self, floor, wave):
        task = floor.generate_pick_tasks(str(wave.id))[0]
        with pytest.raises(ValidationError):
            floor.report_pick_exception(str(task.id), " ")

    def test_investigate_then_resolve(self, floor, wave):
        task = floor.generate_pick_tasks(str(wave.id))[0]
        _work(floor, task, 4)
        exception = floor.get_pick_exceptions()[0]

        floor.investigate_pick_exception(str(exception.id))
        resolved = floor.resolve_pick_exception(str(exception.id), "Cycle count corrected A-01")

        assert resolved.status == PickExceptionStatus.RESOLVED.value
        assert floor.get_pick_exceptions(status=PickExceptionStatus.OPEN.value) == []
        with pytest.raises(StateConflictError):
            floor.resolve_pick_exception(str(exception.id), "Again")


class TestCancelTask:
    def test_cancelled_task_is_retasked(self, floor, wave):
        task = floor.generate_pick_tasks(str(wave.id))[0]
        floor.assign_pick_task(str(task.id), "picker-1")
        floor.start_pick_task(str(task.id))

        floor.cancel_pick_task(str(task.id), "Aisle blocked")

        assert floor.get_inventory("SKU-1")["allocated"] == 5
        tasks = floor.generate_pick_tasks(str(wave.id))
        replacement = [t for t in tasks if t.sku == "SKU-1"]
        assert len(replacement) == 1
        assert str(replacement[0].id) != str(task.id)
        assert replacement[0].quantity == 5

    def test_completed_task_cannot_be_cancelled(self, floor, wave):
        task = floor.generate_pick_tasks(str(wave.id))[0]
        _work(floor, task, 5)

        with pytest.raises(StateConflictError):
            floor.cancel_pick_task(str(task.id))
