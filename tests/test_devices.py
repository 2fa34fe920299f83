import numpy as np
import pytest

from treepm.devices import (
    DeviceBuffers,
    P2PPack,
    assign_device_ids,
    pack_offsets,
    schedule_on_devices,
    update_acc_from_buffer,
)

LEAF_IPART = [10 * i for i in range(10)]
LAST_LEAF = 10
NPART = 100


def _pairs(packs):
    return sorted(
        (t, s) for p in packs for t, s in zip(p.task_t, p.task_s)
    )


def test_pack_rejects_mismatched_tasks():
    with pytest.raises(ValueError):
        P2PPack(0, 1, 0, 10, task_t=[1, 2], task_s=[1])


def test_assign_intra_lb_is_rotation():
    ids = assign_device_ids(16, 5, 4, intra_lb=True)
    assert sorted(ids) == [0, 1, 2, 3]
    assert ids[0] == 5 % 4


def test_assign_few_processes_uses_rank():
    assert assign_device_ids(2, 1, 4) == [1]


def test_assign_hip_uses_device_zero():
    assert assign_device_ids(8, 7, 2, hip=True) == [0]


def test_assign_shares_devices_evenly():
    ids = [assign_device_ids(8, r, 2)[0] for r in range(8)]
    assert set(ids) == {0, 1}
    assert ids.count(0) == ids.count(1)
    assert ids == sorted(ids)


def test_assign_without_devices_raises():
    with pytest.raises(RuntimeError):
        assign_device_ids(4, 0, 0)


def test_reserve_grows_and_keeps_capacity():
    buffers = DeviceBuffers(2)
    grown = buffers.reserve([100, 0], [50, 60], [5, 5])
    assert grown[0] == [0]
    assert grown[1] == [0, 1]
    assert buffers.max_ntask[0] >= 100
    assert buffers.max_npart[1] >= 60
    again = buffers.reserve([90, 0], [50, 60], [5, 5])
    assert again == ([], [], [])


def test_reserve_wrong_length_raises():
    with pytest.raises(ValueError):
        DeviceBuffers(2).reserve([1], [1, 1], [1, 1])


def test_overlapping_packs_merge_on_one_device():
    a = P2PPack(0, 3, 0, 30, task_t=[0, 1], task_s=[1, 2])
    b = P2PPack(2, 3, 20, 30, task_t=[3], task_s=[4])
    merged = schedule_on_devices([a, b], 1, LEAF_IPART, LAST_LEAF, NPART)
    assert len(merged) == 1
    pack = merged[0]
    assert pack.ileaf == 0
    assert pack.nleaf == 5
    assert pack.npart == LEAF_IPART[5]
    assert _pairs(merged) == _pairs([a, b])
    assert a.rankid == -1


def test_merge_reaching_last_leaf_uses_particle_count():
    a = P2PPack(5, 3, 50, 30, task_t=[5], task_s=[6])
    b = P2PPack(7, 3, 70, 30, task_t=[8], task_s=[9])
    merged = schedule_on_devices([a, b], 1, LEAF_IPART, LAST_LEAF, NPART)
    assert len(merged) == 1
    assert merged[0].npart == NPART - 50
    assert merged[0].leaf_end == LAST_LEAF


def test_disjoint_packs_stay_apart():
    a = P2PPack(0, 2, 0, 20, task_t=[0], task_s=[1])
    b = P2PPack(5, 2, 50, 20, task_t=[5], task_s=[6])
    merged = schedule_on_devices([a, b], 1, LEAF_IPART, LAST_LEAF, NPART)
    assert [p.ipart for p in merged] == [0, 50]


def test_load_is_spread_over_devices():
    packs = [
        P2PPack(0, 2, 0, 20, task_t=[0, 1], task_s=[1, 0]),
        P2PPack(5, 2, 50, 20, task_t=[5, 6], task_s=[6, 5]),
    ]
    merged = schedule_on_devices(packs, 2, LEAF_IPART, LAST_LEAF, NPART)
    assert sorted(p.rankid for p in merged) == [0, 1]
    assert sum(p.ntask for p in merged) == sum(p.ntask for p in packs)


def test_preassigned_pack_keeps_device():
    whole = P2PPack(0, 2, 0, 20, task_t=[0, 1, 2], task_s=[0, 1, 2], rankid=0)
    other = P2PPack(5, 2, 50, 20, task_t=[5], task_s=[6])
    merged = schedule_on_devices([other, whole], 2, LEAF_IPART, LAST_LEAF, NPART)
    by_start = {p.ipart: p.rankid for p in merged}
    assert by_start[0] == 0
    assert by_start[50] == 1


def test_schedule_empty():
    assert schedule_on_devices([], 2, LEAF_IPART, LAST_LEAF, NPART) == []


def test_pack_offsets_accumulate_per_device():
    packs = [
        P2PPack(0, 2, 0, 20, task_t=[0], task_s=[1], rankid=0),
        P2PPack(2, 3, 20, 30, task_t=[2, 3], task_s=[3, 2], rankid=1),
        P2PPack(5, 1, 50, 10, task_t=[5], task_s=[5], rankid=0),
    ]
    offsets, totals = pack_offsets(packs, 2)
    assert offsets[0] == (0, 0, 0)
    assert offsets[1] == (0, 0, 0)
    assert offsets[2] == (packs[0].npart, packs[0].nleaf, packs[0].ntask)
    assert sum(t[0] for t in totals) == sum(p.npart for p in packs)
    assert sum(t[2] for t in totals) == sum(p.ntask for p in packs)


def test_pack_offsets_unknown_device():
    with pytest.raises(ValueError):
        pack_offsets([P2PPack(0, 1, 0, 1)], 2)


def _buffer_case():
    pack = P2PPack(0, 1, 2, 3)
    buffer = np.arange(9, dtype=np.float32)
    return pack, buffer


def test_update_acc_all_particles():
    pack, buffer = _buffer_case()
    acc = np.zeros((6, 3))
    update_acc_from_buffer(acc, buffer, pack)
    np.testing.assert_array_equal(acc[2:5], buffer.reshape(3, 3).T)
    assert not acc[[0, 1, 5]].any()


def test_update_acc_only_active_level():
    pack, buffer = _buffer_case()
    acc = np.zeros((6, 3))
    act = np.array([2, 2, 2, 1, 2, 2])
    update_acc_from_buffer(acc, buffer, pack, act, active_level=2)
    expected = buffer.reshape(3, 3).T
    np.testing.assert_array_equal(acc[2], expected[0])
    np.testing.assert_array_equal(acc[4], expected[2])
    assert not acc[3].any()


def test_update_acc_level_zero_changes_nothing():
    pack, buffer = _buffer_case()
    acc = np.ones((6, 3))
    update_acc_from_buffer(acc, buffer, pack, np.zeros(6, dtype=int), active_level=0)
    np.testing.assert_array_equal(acc, np.ones((6, 3)))


def test_update_acc_short_buffer_raises():
    pack, _ = _buffer_case()
    with pytest.raises(ValueError):
        update_acc_from_buffer(np.zeros((6, 3)), np.zeros(4), pack)