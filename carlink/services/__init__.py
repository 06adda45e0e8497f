# Service layer for the vehicle link
# - transport:  pyserial byte stream and known-endpoint discovery
# - codec:      command -> single-byte wire code
# - status:     observable StatusSnapshot holder
# - controller: connection state machine and single-writer I/O worker
# - link:       wiring from Config to a ready controller
