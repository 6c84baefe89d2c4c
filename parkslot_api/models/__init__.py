from models.users import User, Role
from models.vehicle import Vehicle
from models.parking_slot import ParkingSlot, SlotStatus
from models.slot_request import SlotRequest, RequestStatus, ACTIVE_STATUSES
from models.action_log import ActionLog
