import dataclasses
import logging

import requests

log = logging.getLogger(__name__)


@dataclasses.dataclass
class APIManager:
    """REST endpoints for entering a room before the socket join."""

    url: str
    token: str | None = None
    timeout: float = 10.0

    def _get_headers(self) -> dict:
        """Build headers for API requests.

        Returns
        -------
        dict
            Headers dictionary with the bearer token, if any.
        """
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _post(self, path: str, payload: dict) -> dict:
        response = requests.post(
            f"{self.url}{path}",
            json=payload,
            headers=self._get_headers(),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json().get("data") or {}

    def join_room(self, room_code: str, as_spectator: bool = False) -> dict:
        """Join a room by its code.

        Parameters
        ----------
        room_code : str
            Human facing room code.
        as_spectator : bool
            Join without taking a seat.

        Returns
        -------
        dict
            The room document, empty if the server returned none.

        Raises
        ------
        requests.HTTPError
            If the server rejects the request.
        """
        log.debug(f"REST join of room {room_code}")
        return self._post(
            "/api/rooms/join", {"roomCode": room_code, "asSpectator": as_spectator}
        )

    def create_room(self, max_players: int = 8, is_private: bool = False) -> dict:
        """Create a room and return its document."""
        return self._post(
            "/api/rooms", {"maxPlayers": max_players, "isPrivate": is_private}
        )
