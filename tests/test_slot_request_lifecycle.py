import unittest
from unittest.mock import patch

from sqlalchemy.exc import IntegrityError

from db.db import db
from models import ActionLog, ParkingSlot, RequestStatus, SlotRequest, SlotStatus
from services import slot_requests as lifecycle
from utils.errors import Conflict, Forbidden, InvalidState, NoCompatibleSlot, NotFound, ValidationError
from tests.base import ApiTestCase


class LifecycleTestCase(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.owner = self.make_user()
        self.other = self.make_user(email='other@example.com', name='Other Driver')
        self.admin = self.make_admin()
        self.vehicle = self.make_vehicle(self.owner, plate_number='MED-001', size='medium', vehicle_type='car')

    def actions(self):
        return [log.action for log in ActionLog.query.order_by(ActionLog.timestamp).all()]


class TestCreate(LifecycleTestCase):

    def test_create_starts_pending_without_slot(self):
        slot_request = lifecycle.create_slot_request(str(self.vehicle.id), self.owner)

        self.assertEqual(slot_request.request_status, RequestStatus.PENDING)
        self.assertIsNone(slot_request.slot_id)
        self.assertIsNone(slot_request.assigned_slot_number)
        self.assertIsNone(slot_request.approved_at)
        self.assertIn('SLOT_REQUEST_CREATED', self.actions())

    def test_second_active_request_for_vehicle_conflicts(self):
        first = lifecycle.create_slot_request(str(self.vehicle.id), self.owner)

        with self.assertRaises(Conflict) as ctx:
            lifecycle.create_slot_request(str(self.vehicle.id), self.owner)

        self.assertIn('PENDING', ctx.exception.message)
        self.assertEqual(ctx.exception.details['request_id'], str(first.id))

    def test_request_for_someone_elses_vehicle_is_forbidden(self):
        with self.assertRaises(Forbidden):
            lifecycle.create_slot_request(str(self.vehicle.id), self.other)

    def test_unknown_vehicle_is_not_found(self):
        with self.assertRaises(NotFound):
            lifecycle.create_slot_request('00000000-0000-0000-0000-000000000000', self.owner)

    def test_malformed_vehicle_id_is_a_validation_error(self):
        with self.assertRaises(ValidationError):
            lifecycle.create_slot_request('not-a-uuid', self.owner)
        with self.assertRaises(ValidationError):
            lifecycle.create_slot_request(None, self.owner)

    def test_new_request_allowed_after_cancel(self):
        first = lifecycle.create_slot_request(str(self.vehicle.id), self.owner)
        lifecycle.cancel_slot_request(str(first.id), self.owner)

        second = lifecycle.create_slot_request(str(self.vehicle.id), self.owner)

        self.assertEqual(second.request_status, RequestStatus.PENDING)

    def test_database_rejects_two_active_requests_for_one_vehicle(self):
        self.make_request(self.owner, self.vehicle)
        db.session.add(SlotRequest(user_id=self.owner.id, vehicle_id=self.vehicle.id,
                                   request_status=RequestStatus.APPROVED))
        with self.assertRaises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    def test_audit_failure_does_not_fail_create(self):
        with patch('services.action_log.ActionLog', side_effect=RuntimeError('audit store down')):
            slot_request = lifecycle.create_slot_request(str(self.vehicle.id), self.owner)

        self.assertEqual(slot_request.request_status, RequestStatus.PENDING)
        self.assertEqual(SlotRequest.query.count(), 1)


class TestApprove(LifecycleTestCase):

    def setUp(self):
        super().setUp()
        self.slot_request = self.make_request(self.owner, self.vehicle)

    def test_automatic_approval_binds_slot_and_marks_it_unavailable(self):
        slot = self.make_slot('P-01')

        approved = lifecycle.approve_slot_request(str(self.slot_request.id), self.admin)

        self.assertEqual(approved.request_status, RequestStatus.APPROVED)
        self.assertEqual(approved.slot_id, slot.id)
        self.assertEqual(approved.assigned_slot_number, 'P-01')
        self.assertIsNotNone(approved.approved_at)
        self.assertEqual(db.session.get(ParkingSlot, slot.id).status, SlotStatus.UNAVAILABLE)
        self.assertIn('SLOT_REQUEST_APPROVED', self.actions())

    def test_no_compatible_slot_leaves_request_pending(self):
        large = self.make_vehicle(self.owner, plate_number='BIG-001', size='large', vehicle_type='car')
        large_request = self.make_request(self.owner, large)
        self.make_slot('P-01', size='medium')

        with self.assertRaises(NoCompatibleSlot):
            lifecycle.approve_slot_request(str(large_request.id), self.admin)

        self.assertEqual(db.session.get(SlotRequest, large_request.id).request_status, RequestStatus.PENDING)
        self.assertEqual(ParkingSlot.query.filter_by(status=SlotStatus.UNAVAILABLE).count(), 0)

    def test_manual_slot_of_wrong_size_is_rejected(self):
        small = self.make_slot('S-01', size='small')

        with self.assertRaises(NoCompatibleSlot):
            lifecycle.approve_slot_request(str(self.slot_request.id), self.admin, slot_id=str(small.id))

        self.assertEqual(db.session.get(ParkingSlot, small.id).status, SlotStatus.AVAILABLE)
        self.assertEqual(db.session.get(SlotRequest, self.slot_request.id).request_status, RequestStatus.PENDING)

    def test_manual_slot_is_used_over_automatic_choice(self):
        self.make_slot('P-01')
        chosen = self.make_slot('P-07')

        approved = lifecycle.approve_slot_request(str(self.slot_request.id), self.admin, slot_id=str(chosen.id))

        self.assertEqual(approved.assigned_slot_number, 'P-07')

    def test_malformed_manual_slot_id_is_a_validation_error(self):
        with self.assertRaises(ValidationError):
            lifecycle.approve_slot_request(str(self.slot_request.id), self.admin, slot_id='slot-7')

    def test_second_approval_is_invalid_state(self):
        self.make_slot('P-01')
        self.make_slot('P-02')

        lifecycle.approve_slot_request(str(self.slot_request.id), self.admin)
        with self.assertRaises(InvalidState) as ctx:
            lifecycle.approve_slot_request(str(self.slot_request.id), self.admin)

        self.assertIn('approved', ctx.exception.message)
        self.assertEqual(ParkingSlot.query.filter_by(status=SlotStatus.UNAVAILABLE).count(), 1)

    def test_rejected_request_cannot_be_approved(self):
        self.make_slot('P-01')
        lifecycle.reject_slot_request(str(self.slot_request.id), self.admin)

        with self.assertRaises(InvalidState) as ctx:
            lifecycle.approve_slot_request(str(self.slot_request.id), self.admin)

        self.assertIn('rejected', ctx.exception.message)

    def test_slot_taken_concurrently_moves_on_to_next_candidate(self):
        self.make_slot('P-01')
        self.make_slot('P-02')
        real_claim = lifecycle._claim_slot
        calls = []

        def claim_loses_first_race(slot_id):
            calls.append(slot_id)
            if len(calls) == 1:
                return False
            return real_claim(slot_id)

        with patch.object(lifecycle, '_claim_slot', side_effect=claim_loses_first_race):
            approved = lifecycle.approve_slot_request(str(self.slot_request.id), self.admin)

        self.assertEqual(len(calls), 2)
        self.assertNotEqual(calls[0], calls[1])
        self.assertEqual(approved.slot_id, calls[1])

    def test_manual_slot_taken_concurrently_fails(self):
        chosen = self.make_slot('P-01')

        with patch.object(lifecycle, '_claim_slot', return_value=False):
            with self.assertRaises(NoCompatibleSlot):
                lifecycle.approve_slot_request(str(self.slot_request.id), self.admin, slot_id=str(chosen.id))

    def test_losing_the_request_race_rolls_back_the_slot_claim(self):
        slot = self.make_slot('P-01')

        with patch.object(lifecycle, '_transition_from_pending', return_value=False):
            with self.assertRaises(InvalidState):
                lifecycle.approve_slot_request(str(self.slot_request.id), self.admin)

        self.assertEqual(db.session.get(ParkingSlot, slot.id).status, SlotStatus.AVAILABLE)
        stored = db.session.get(SlotRequest, self.slot_request.id)
        self.assertEqual(stored.request_status, RequestStatus.PENDING)
        self.assertIsNone(stored.slot_id)

    def test_notification_failure_does_not_fail_approval(self):
        self.make_slot('P-01')

        with patch('services.slot_requests.notify_request_approved', side_effect=RuntimeError('smtp down')):
            with self.assertLogs('services.slot_requests', level='ERROR') as logs:
                approved = lifecycle.approve_slot_request(str(self.slot_request.id), self.admin)

        self.assertEqual(approved.request_status, RequestStatus.APPROVED)
        self.assertIn('smtp down', logs.output[0])
        self.assertEqual(db.session.get(SlotRequest, self.slot_request.id).request_status, RequestStatus.APPROVED)

    def test_undelivered_notification_is_only_a_warning(self):
        self.make_slot('P-01')

        with patch('services.slot_requests.notify_request_approved', return_value=False):
            with self.assertLogs('services.slot_requests', level='WARNING') as logs:
                approved = lifecycle.approve_slot_request(str(self.slot_request.id), self.admin)

        self.assertEqual(approved.request_status, RequestStatus.APPROVED)
        self.assertTrue(any('not delivered' in line for line in logs.output))

    def test_requester_is_notified_on_approval(self):
        self.make_slot('P-01')

        with patch('services.slot_requests.notify_request_approved', return_value=True) as notify:
            lifecycle.approve_slot_request(str(self.slot_request.id), self.admin)

        notify.assert_called_once()
        self.assertEqual(notify.call_args[0][0].id, self.slot_request.id)


class TestRejectCancelUpdate(LifecycleTestCase):

    def setUp(self):
        super().setUp()
        self.slot_request = self.make_request(self.owner, self.vehicle)

    def test_reject_stores_reason_and_notifies(self):
        with patch('services.slot_requests.notify_request_rejected', return_value=True) as notify:
            rejected = lifecycle.reject_slot_request(str(self.slot_request.id), self.admin, reason='Lot is full')

        self.assertEqual(rejected.request_status, RequestStatus.REJECTED)
        self.assertEqual(rejected.rejection_reason, 'Lot is full')
        self.assertIsNone(rejected.slot_id)
        self.assertEqual(notify.call_args[0][1], 'Lot is full')

    def test_notification_failure_does_not_fail_rejection(self):
        with patch('services.slot_requests.notify_request_rejected', side_effect=RuntimeError('smtp down')):
            with self.assertLogs('services.slot_requests', level='ERROR'):
                rejected = lifecycle.reject_slot_request(str(self.slot_request.id), self.admin, reason='Full')

        self.assertEqual(rejected.request_status, RequestStatus.REJECTED)
        self.assertEqual(db.session.get(SlotRequest, self.slot_request.id).rejection_reason, 'Full')

    def test_rejected_request_cannot_be_cancelled_or_rejected_again(self):
        lifecycle.reject_slot_request(str(self.slot_request.id), self.admin)

        with self.assertRaises(InvalidState):
            lifecycle.cancel_slot_request(str(self.slot_request.id), self.owner)
        with self.assertRaises(InvalidState):
            lifecycle.reject_slot_request(str(self.slot_request.id), self.admin)

    def test_cancel_by_owner(self):
        cancelled = lifecycle.cancel_slot_request(str(self.slot_request.id), self.owner)

        self.assertEqual(cancelled.request_status, RequestStatus.CANCELLED)
        self.assertIn('SLOT_REQUEST_CANCELLED_BY_USER', self.actions())

    def test_cancel_by_another_user_is_forbidden(self):
        with self.assertRaises(Forbidden):
            lifecycle.cancel_slot_request(str(self.slot_request.id), self.other)

        self.assertEqual(db.session.get(SlotRequest, self.slot_request.id).request_status, RequestStatus.PENDING)

    def test_cancelled_request_cannot_be_approved(self):
        self.make_slot('P-01')
        lifecycle.cancel_slot_request(str(self.slot_request.id), self.owner)

        with self.assertRaises(InvalidState) as ctx:
            lifecycle.approve_slot_request(str(self.slot_request.id), self.admin)

        self.assertIn('cancelled', ctx.exception.message)

    def test_approved_request_cannot_be_cancelled(self):
        self.make_slot('P-01')
        lifecycle.approve_slot_request(str(self.slot_request.id), self.admin)

        with self.assertRaises(InvalidState):
            lifecycle.cancel_slot_request(str(self.slot_request.id), self.owner)

    def test_update_swaps_vehicle(self):
        second = self.make_vehicle(self.owner, plate_number='MED-002')

        updated = lifecycle.update_slot_request(str(self.slot_request.id), str(second.id), self.owner)

        self.assertEqual(updated.vehicle_id, second.id)
        self.assertEqual(updated.request_status, RequestStatus.PENDING)

    def test_update_to_vehicle_with_active_request_conflicts(self):
        second = self.make_vehicle(self.owner, plate_number='MED-002')
        self.make_request(self.owner, second)

        with self.assertRaises(Conflict) as ctx:
            lifecycle.update_slot_request(str(self.slot_request.id), str(second.id), self.owner)

        self.assertIn('MED-002', ctx.exception.message)

    def test_update_with_same_vehicle_is_allowed(self):
        updated = lifecycle.update_slot_request(str(self.slot_request.id), str(self.vehicle.id), self.owner)

        self.assertEqual(updated.vehicle_id, self.vehicle.id)

    def test_update_with_foreign_vehicle_is_forbidden(self):
        foreign = self.make_vehicle(self.other, plate_number='OTH-001')

        with self.assertRaises(Forbidden):
            lifecycle.update_slot_request(str(self.slot_request.id), str(foreign.id), self.owner)

    def test_update_of_someone_elses_request_is_forbidden(self):
        own_vehicle = self.make_vehicle(self.other, plate_number='OTH-001')

        with self.assertRaises(Forbidden):
            lifecycle.update_slot_request(str(self.slot_request.id), str(own_vehicle.id), self.other)

    def test_update_of_non_pending_request_is_invalid_state(self):
        second = self.make_vehicle(self.owner, plate_number='MED-002')
        lifecycle.cancel_slot_request(str(self.slot_request.id), self.owner)

        with self.assertRaises(InvalidState) as ctx:
            lifecycle.update_slot_request(str(self.slot_request.id), str(second.id), self.owner)

        self.assertIn('cancelled', ctx.exception.message)


class TestVisibility(LifecycleTestCase):

    def test_owner_and_admin_can_view_but_others_cannot(self):
        slot_request = self.make_request(self.owner, self.vehicle)

        self.assertEqual(lifecycle.get_slot_request(str(slot_request.id), self.owner).id, slot_request.id)
        self.assertEqual(lifecycle.get_slot_request(str(slot_request.id), self.admin).id, slot_request.id)
        with self.assertRaises(Forbidden):
            lifecycle.get_slot_request(str(slot_request.id), self.other)

    def test_users_list_only_their_own_requests(self):
        self.make_request(self.owner, self.vehicle)
        other_vehicle = self.make_vehicle(self.other, plate_number='OTH-001')
        self.make_request(self.other, other_vehicle)

        own = lifecycle.list_slot_requests(self.owner)
        everything = lifecycle.list_slot_requests(self.admin)

        self.assertEqual(own.total, 1)
        self.assertEqual(own.items[0].user_id, self.owner.id)
        self.assertEqual(everything.total, 2)

    def test_admin_search_matches_user_email(self):
        self.make_request(self.owner, self.vehicle)
        other_vehicle = self.make_vehicle(self.other, plate_number='OTH-001')
        self.make_request(self.other, other_vehicle)

        found = lifecycle.list_slot_requests(self.admin, search='other@')

        self.assertEqual(found.total, 1)
        self.assertEqual(found.items[0].vehicle_id, other_vehicle.id)

    def test_status_filter(self):
        self.make_request(self.owner, self.vehicle, status=RequestStatus.CANCELLED)
        self.make_request(self.owner, self.vehicle)

        self.assertEqual(lifecycle.list_slot_requests(self.owner, status='cancelled').total, 1)
        with self.assertRaises(ValidationError):
            lifecycle.list_slot_requests(self.owner, status='lost')


class TestInvariants(LifecycleTestCase):
    """Walk a mixed history and check the slot/request invariants after it."""

    def test_slot_binding_invariants_hold(self):
        for i in range(3):
            self.make_slot(f'P-0{i + 1}')
        vehicles = [self.vehicle] + [
            self.make_vehicle(self.owner, plate_number=f'MED-10{i}') for i in range(4)
        ]
        requests = [lifecycle.create_slot_request(str(v.id), self.owner) for v in vehicles]

        lifecycle.approve_slot_request(str(requests[0].id), self.admin)
        lifecycle.reject_slot_request(str(requests[1].id), self.admin)
        lifecycle.cancel_slot_request(str(requests[2].id), self.owner)
        lifecycle.approve_slot_request(str(requests[3].id), self.admin)
        lifecycle.approve_slot_request(str(requests[4].id), self.admin)

        for slot_request in SlotRequest.query.all():
            bound = slot_request.slot_id is not None
            self.assertEqual(bound, slot_request.request_status == RequestStatus.APPROVED)
            self.assertEqual(bound, slot_request.assigned_slot_number is not None)

        for slot in ParkingSlot.query.all():
            holders = SlotRequest.query.filter_by(slot_id=slot.id, request_status=RequestStatus.APPROVED).count()
            self.assertEqual(slot.status == SlotStatus.UNAVAILABLE, holders == 1)
            self.assertLessEqual(holders, 1)

        for vehicle in vehicles:
            active = SlotRequest.query.filter(
                SlotRequest.vehicle_id == vehicle.id,
                SlotRequest.request_status.in_([RequestStatus.PENDING, RequestStatus.APPROVED])
            ).count()
            self.assertLessEqual(active, 1)


if __name__ == '__main__':
    unittest.main()
