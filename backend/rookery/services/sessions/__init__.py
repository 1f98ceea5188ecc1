"""Realtime session coordination: rooms, matchmaking, invites, settlement.

Transport concerns (Socket.IO handlers, HTTP routes) live outside this
package and call into the SessionHub attached to the Flask app.
"""
