"""Internal constants shared across the library."""

FIRESTORE_BASE_URL = "https://firestore.googleapis.com"
USER_AGENT = "drivertrack/0.3"

# ------------------------------------------------------------------
# Remote record field names
# ------------------------------------------------------------------

FIELD_LATITUDE = "latitude"
FIELD_LONGITUDE = "longitude"
FIELD_ACCURACY = "accuracy"
FIELD_LAST_UPDATE = "lastUpdate"
FIELD_STATUS = "status"
FIELD_ON_DUTY = "isOnDuty"

#: Fields written by both the latest record and each history entry.
#: ``lastUpdate`` is not in the mask; it is set by a server transform.
RECORD_FIELDS: tuple[str, ...] = (
    FIELD_LATITUDE,
    FIELD_LONGITUDE,
    FIELD_ACCURACY,
    FIELD_STATUS,
    FIELD_ON_DUTY,
)

# ------------------------------------------------------------------
# Local persisted layout
# ------------------------------------------------------------------

KEY_IDENTITY = "last_username"
KEY_LATITUDE = "last_location_lat"
KEY_LONGITUDE = "last_location_lng"
KEY_DIRTY = "location_updated"
KEY_ACCURACY = "last_location_accuracy"
KEY_CAPTURED_AT = "last_location_time"

# ------------------------------------------------------------------
# Bridge acknowledgements
# ------------------------------------------------------------------

ACK_STARTED = "Service started"
ACK_STOPPED = "Service stopped"
ACK_IDENTITY_UPDATED = "Identity updated"
