class RelayError(Exception):
    """A relay request the server refuses; the message is sent back to the peer."""

    message = "Request rejected"

    def __init__(self, message: str = ""):
        super().__init__(message or self.message)


class RoomExistsError(RelayError):
    message = "Room code already exists"

    def __init__(self, room_code: str):
        self.room_code = room_code
        super().__init__()


class RoomNotFoundError(RelayError):
    message = "Room not found"

    def __init__(self, room_code: str):
        self.room_code = room_code
        super().__init__()


class RoomFullError(RelayError):
    message = "Room is full"

    def __init__(self, room_code: str):
        self.room_code = room_code
        super().__init__()


class RoomIncompleteError(RelayError):
    message = "Room is incomplete"

    def __init__(self, room_code: str):
        self.room_code = room_code
        super().__init__()


class InvalidRoomCodeError(RelayError):
    message = "Invalid room code"


class AlreadyInRoomError(RelayError):
    message = "Already in a room"

    def __init__(self, room_code: str):
        self.room_code = room_code
        super().__init__()


class NotInRoomError(RelayError):
    message = "Not a member of this room"


class MalformedMessageError(RelayError):
    message = "Malformed message"


class DesyncError(Exception):
    """A peer move that does not fit the local engine state."""

    def __init__(self, reason: str, payload=None):
        self.reason = reason
        self.payload = payload
        super().__init__(f"desync: {reason}")
