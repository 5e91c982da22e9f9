"""client/ -- The signed-in side of GeoGuard: local session state and the location poller.

Layer rule: client/ talks to the server over HTTP only. It imports core/geo
for the Coordinate value type and nothing from api/ or auth/.
"""
