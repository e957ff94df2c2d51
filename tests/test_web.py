"""
Tests for the web layer: HTTP API, push channels and the tournament service.
"""

import asyncio
import random
import tempfile

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

import tourney.web.app as app_module
from tourney.config import default_config
from tourney.exceptions import InvalidSubmissionError, TournamentStateError, UnknownTeamError
from tourney.store.storage import TournamentStorage
from tourney.utils.constants import GROUP_STAGE, SEMIFINAL_STAGE
from tourney.web.service import TournamentService
from tourney.web.websocket import ChannelWebSocketHandler, ConnectionManager


def sheet(round_name, judge_id, totals):
    """Scoring sheet splitting each total over the two criteria."""
    return {
        "round_name": round_name,
        "judge_id": judge_id,
        "teams": {
            name: {"argumentacion": total - total // 2, "refutacion": total // 2}
            for name, total in totals.items()
        },
    }


@pytest.fixture
def service():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield TournamentService(
            TournamentStorage(tmpdir), default_config(tmpdir), rng=random.Random(5)
        )


@pytest.fixture
def client(service):
    app_module.configure(service)
    with TestClient(app_module.app) as client:
        yield client
    app_module.service = None


@pytest.fixture
def seeded(client):
    """Two verified teams, two judges, a two-criterion rubric and one group round."""
    for name in ["TeamA", "TeamB"]:
        assert client.post("/api/teams", json={"name": name, "verified": True}).status_code == 200
    client.post("/api/judges", json={"name": "Ana", "judge_id": "judge-1"})
    client.post("/api/judges", json={"name": "Luis", "judge_id": "judge-2"})
    client.post("/api/rubric", json={"name": "Argumentación", "criterion_id": "argumentacion"})
    client.post("/api/rubric", json={"name": "Refutación", "criterion_id": "refutacion"})
    client.post("/api/rounds", json={"name": "Ronda 1", "phase": GROUP_STAGE})
    return client


class TestScoringApi:
    """Tests for the scoring endpoints."""

    def test_tied_round(self, seeded):
        """7+6 against 5+8 is a tie."""
        assert seeded.post("/api/scores", json=sheet("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5})).status_code == 200
        assert seeded.post("/api/scores", json=sheet("Ronda 1", "judge-2", {"TeamA": 6, "TeamB": 8})).status_code == 200

        result = seeded.get("/api/results/Ronda%201").json()
        assert result["status"] == "tie"
        assert result["tied_teams"] == ["TeamA", "TeamB"]
        assert result["tied_score"] == 13
        assert result["judges"] == 2

    def test_submission_fields(self, seeded):
        response = seeded.post("/api/scores", json=sheet("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5}))
        data = response.json()
        assert data["kind"] == "judge"
        assert data["judge_name"] == "Ana"
        assert data["teams"][0]["total"] == 7
        assert data["teams"][0]["checksum"]

        scores = seeded.get("/api/scores", params={"round_name": "Ronda 1"}).json()["scores"]
        assert len(scores) == 1

    def test_duplicate_judge_submission(self, seeded):
        seeded.post("/api/scores", json=sheet("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5}))
        response = seeded.post("/api/scores", json=sheet("Ronda 1", "judge-1", {"TeamA": 9, "TeamB": 5}))
        assert response.status_code == 409
        assert response.json()["error"] == "DuplicateJudgeSubmissionError"

    def test_unknown_round(self, seeded):
        response = seeded.post("/api/scores", json=sheet("Ronda 9", "judge-1", {"TeamA": 7, "TeamB": 5}))
        assert response.status_code == 404
        assert seeded.get("/api/results/Ronda%209").status_code == 404

    def test_unregistered_team(self, seeded):
        response = seeded.post("/api/scores", json=sheet("Ronda 1", "judge-1", {"TeamA": 7, "Ghost": 5}))
        assert response.status_code == 422
        assert response.json()["error"] == "UnknownTeamError"

    def test_incomplete_sheet(self, seeded):
        body = sheet("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5})
        del body["teams"]["TeamB"]["refutacion"]
        response = seeded.post("/api/scores", json=body)
        assert response.status_code == 422
        assert response.json()["error"] == "InvalidSubmissionError"

    def test_score_outside_rubric_scale(self, seeded):
        body = sheet("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5})
        body["teams"]["TeamA"]["argumentacion"] = 9
        response = seeded.post("/api/scores", json=body)
        assert response.status_code == 422
        assert response.json()["error"] == "InvalidSubmissionError"
        assert seeded.get("/api/scores").json()["scores"] == []

    def test_criterion_not_in_rubric(self, seeded):
        body = sheet("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5})
        body["teams"]["TeamA"]["oratoria"] = 3
        assert seeded.post("/api/scores", json=body).status_code == 422

    def test_scores_after_bye_rejected(self, seeded):
        seeded.post("/api/byes", json={"round_name": "Ronda 1", "team": "TeamA"})
        response = seeded.post("/api/scores", json=sheet("Ronda 1", "judge-1", {"TeamA": 5, "TeamB": 7}))
        assert response.status_code == 400
        assert response.json()["error"] == "ByeConflictError"

        result = seeded.get("/api/results/Ronda%201").json()
        assert result["winner"] == "TeamA"
        assert result["is_bye"]

    def test_scoring_status(self, seeded):
        seeded.post("/api/scores", json=sheet("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5}))
        status = seeded.get("/api/scoring-status").json()["rounds"]["Ronda 1"]
        assert status["scored"] == ["Ana"]
        assert status["pending"] == ["Luis"]
        assert not status["is_complete"]


class TestTieBreakApi:
    """Tests for the tie-break endpoints."""

    def test_tiebreak_flow(self, seeded):
        """Roll, confirm, then a second start is refused."""
        seeded.post("/api/scores", json=sheet("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5}))
        seeded.post("/api/scores", json=sheet("Ronda 1", "judge-2", {"TeamA": 6, "TeamB": 8}))

        started = seeded.post("/api/tiebreaks/Ronda%201/start").json()
        assert started["state"] == "roll_pending"
        assert started["teams"] == ["TeamA", "TeamB"]

        rolled = seeded.post("/api/tiebreaks/Ronda%201/roll", json={"values": {"TeamA": 5, "TeamB": 2}}).json()
        assert rolled["state"] == "roll_resolved"
        assert rolled["winner"] == "TeamA"

        confirmed = seeded.post("/api/tiebreaks/Ronda%201/confirm")
        assert confirmed.status_code == 200
        assert confirmed.json()["kind"] == "tiebreak"

        result = seeded.get("/api/results/Ronda%201").json()
        assert result["winner"] == "TeamA"
        assert {t["name"]: t["total_points"] for t in result["teams"]} == {"TeamA": 14, "TeamB": 13}

        again = seeded.post("/api/tiebreaks/Ronda%201/start")
        assert again.status_code == 409
        assert again.json()["error"] == "AlreadyResolvedError"
        assert seeded.get("/api/tiebreaks/Ronda%201").json()["state"] == "winner_confirmed"

    def test_confirm_after_late_scores(self, seeded):
        """A late sheet that changes the tie drops the tie-break unconfirmed."""
        seeded.post("/api/judges", json={"name": "Eva", "judge_id": "judge-3"})
        seeded.post("/api/scores", json=sheet("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5}))
        seeded.post("/api/scores", json=sheet("Ronda 1", "judge-2", {"TeamA": 6, "TeamB": 8}))
        seeded.post("/api/tiebreaks/Ronda%201/start")
        seeded.post("/api/tiebreaks/Ronda%201/roll", json={"values": {"TeamA": 5, "TeamB": 2}})

        seeded.post("/api/scores", json=sheet("Ronda 1", "judge-3", {"TeamA": 2, "TeamB": 3}))
        response = seeded.post("/api/tiebreaks/Ronda%201/confirm")
        assert response.status_code == 400
        assert response.json()["error"] == "StaleTieBreakError"

        assert seeded.get("/api/tiebreaks/Ronda%201").json()["state"] == "no_tie"
        result = seeded.get("/api/results/Ronda%201").json()
        assert result["winner"] == "TeamB"
        assert {t["name"]: t["total_points"] for t in result["teams"]} == {"TeamA": 15, "TeamB": 16}
        assert seeded.post("/api/tiebreaks/Ronda%201/confirm").status_code == 400

    def test_untied_round(self, seeded):
        seeded.post("/api/scores", json=sheet("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5}))
        assert seeded.post("/api/tiebreaks/Ronda%201/start").status_code == 400

    def test_random_roll(self, seeded):
        seeded.post("/api/scores", json=sheet("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 7}))
        seeded.post("/api/tiebreaks/Ronda%201/start")
        rolled = seeded.post("/api/tiebreaks/Ronda%201/roll").json()
        assert len(rolled["rolls"]) == 1
        assert set(rolled["rolls"][0]) == {"TeamA", "TeamB"}


class TestDebateStateApi:
    """Tests for the live round endpoints."""

    def test_activate_round(self, seeded):
        response = seeded.put("/api/debate-state/round", json={"round_name": "Ronda 1"})
        assert response.status_code == 200
        assert response.json()["teams"] == ["TeamA", "TeamB"]

        seeded.patch("/api/debate-state", json={"question": "¿Uniforme escolar?", "timer_duration": 300})
        state = seeded.get("/api/debate-state").json()
        assert state["current_round"] == "Ronda 1"
        assert state["question"] == "¿Uniforme escolar?"
        assert state["timer_duration"] == 300

    def test_single_team_rejected(self, seeded):
        response = seeded.put("/api/debate-state/round", json={"round_name": "Ronda 1", "teams": ["TeamA"]})
        assert response.status_code == 400
        assert response.json()["error"] == "TournamentStateError"

    def test_unknown_round(self, seeded):
        response = seeded.put("/api/debate-state/round", json={"round_name": "Final", "teams": ["TeamA", "TeamB"]})
        assert response.status_code == 404

    def test_bye_confirmed_once(self, seeded):
        """A bye is recorded once; the second request conflicts."""
        first = seeded.post("/api/byes", json={"round_name": "Ronda 1", "team": "TeamA"})
        assert first.status_code == 200
        assert first.json()["match_id"] == "Ronda 1-bye-TeamA"

        second = seeded.post("/api/byes", json={"round_name": "Ronda 1", "team": "TeamA"})
        assert second.status_code == 409
        assert second.json()["error"] == "AlreadyAdvancedError"

        result = seeded.get("/api/results/Ronda%201").json()
        assert result["is_bye"]
        assert result["teams"] == [{"name": "TeamA", "total_points": 1}]

    def test_bye_on_scored_round_rejected(self, seeded):
        seeded.post("/api/scores", json=sheet("Ronda 1", "judge-1", {"TeamA": 5, "TeamB": 7}))
        response = seeded.post("/api/byes", json={"round_name": "Ronda 1", "team": "TeamA"})
        assert response.status_code == 400
        assert response.json()["error"] == "ByeConflictError"
        assert seeded.get("/api/results/Ronda%201").json()["winner"] == "TeamB"

    def test_second_team_bye_rejected(self, seeded):
        seeded.post("/api/byes", json={"round_name": "Ronda 1", "team": "TeamA"})
        response = seeded.post("/api/byes", json={"round_name": "Ronda 1", "team": "TeamB"})
        assert response.status_code == 409
        assert seeded.get("/api/results/Ronda%201").json()["winner"] == "TeamA"


class TestRubricApi:
    """Tests for the rubric endpoints."""

    def test_rubric_in_creation_order(self, seeded):
        criteria = seeded.get("/api/rubric").json()["criteria"]
        assert [c["criterion_id"] for c in criteria] == ["argumentacion", "refutacion"]
        assert criteria[0]["name"] == "Argumentación"

    def test_added_criterion_must_be_scored(self, seeded):
        added = seeded.post("/api/rubric", json={"name": "Oratoria", "description": "Claridad y tono"})
        assert added.status_code == 200
        criterion_id = added.json()["criterion_id"]

        response = seeded.post("/api/scores", json=sheet("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5}))
        assert response.status_code == 422

        body = sheet("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5})
        body["teams"]["TeamA"][criterion_id] = 5
        body["teams"]["TeamB"][criterion_id] = 1
        stored = seeded.post("/api/scores", json=body).json()
        assert [t["total"] for t in stored["teams"]] == [12, 6]

    def test_update_and_delete(self, seeded):
        updated = seeded.patch("/api/rubric/refutacion", json={"description": "Respuesta al rival"})
        assert updated.json()["description"] == "Respuesta al rival"
        assert updated.json()["name"] == "Refutación"

        assert seeded.delete("/api/rubric/refutacion").status_code == 200
        assert [c["criterion_id"] for c in seeded.get("/api/rubric").json()["criteria"]] == ["argumentacion"]

        body = {"round_name": "Ronda 1", "judge_id": "judge-1",
                "teams": {"TeamA": {"argumentacion": 4}, "TeamB": {"argumentacion": 3}}}
        assert seeded.post("/api/scores", json=body).status_code == 200

    def test_missing_criterion(self, seeded):
        assert seeded.patch("/api/rubric/nope", json={"name": "X"}).status_code == 404
        response = seeded.delete("/api/rubric/nope")
        assert response.status_code == 404
        assert response.json()["error"] == "CriterionNotFoundError"

    def test_empty_rubric_refuses_scores(self, client):
        client.post("/api/teams", json={"name": "TeamA", "verified": True})
        client.post("/api/judges", json={"name": "Ana", "judge_id": "judge-1"})
        client.post("/api/rounds", json={"name": "Ronda 1", "phase": GROUP_STAGE})
        response = client.post("/api/scores", json={
            "round_name": "Ronda 1", "judge_id": "judge-1", "teams": {"TeamA": {"x": 3}},
        })
        assert response.status_code == 422
        assert "No rubric criteria" in response.json()["detail"]


class TestAdminApi:
    """Tests for teams, rounds, settings, draw and audit."""

    def test_closed_registrations(self, seeded):
        settings = seeded.patch("/api/settings", json={"registrations_closed": True}).json()
        assert settings["registrationsClosed"] is True
        assert [t["name"] for t in settings["lockedInTeams"]] == ["TeamA", "TeamB"]

        response = seeded.post("/api/teams", json={"name": "TeamC"})
        assert response.status_code == 400

    def test_update_missing_team(self, seeded):
        assert seeded.patch("/api/teams/nope", json={"name": "X"}).status_code == 404

    def test_rename_to_taken_name(self, seeded):
        team_b = next(t for t in seeded.get("/api/teams").json()["teams"] if t["name"] == "TeamB")
        response = seeded.patch(f"/api/teams/{team_b['team_id']}", json={"name": "TeamA"})
        assert response.status_code == 400
        assert response.json()["error"] == "TournamentStateError"
        assert sorted(t["name"] for t in seeded.get("/api/teams").json()["teams"]) == ["TeamA", "TeamB"]

    def test_reserved_judge_id(self, seeded):
        response = seeded.post("/api/judges", json={"name": "Intruso", "judge_id": "system"})
        assert response.status_code == 422
        assert "system" not in [j["judge_id"] for j in seeded.get("/api/judges").json()["judges"]]

    def test_delete_scored_round(self, seeded):
        seeded.post("/api/scores", json=sheet("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5}))
        response = seeded.delete("/api/rounds/Ronda%201")
        assert response.status_code == 400
        assert response.json()["error"] == "RoundHasScoresError"

    def test_draw(self, seeded):
        seeded.post("/api/rounds", json={"name": "Ronda 2", "phase": GROUP_STAGE})
        document = seeded.post("/api/draw").json()
        assert sorted(e["name"] for e in document["teams"]) == ["TeamA", "TeamB"]
        assignments = seeded.get("/api/draw").json()["assignments"]
        assert set(assignments) == {"Ronda 1", "Ronda 2"}

        assert seeded.put("/api/draw", json={"Ronda 1": ["TeamB", "Ghost"]}).status_code == 422
        assert seeded.delete("/api/draw").status_code == 200
        assert seeded.get("/api/draw").json()["assignments"] == {}

    def test_bracket(self, seeded):
        seeded.post("/api/scores", json=sheet("Ronda 1", "judge-1", {"TeamA": 7, "TeamB": 5}))
        bracket = seeded.get("/api/bracket").json()
        assert [s["name"] for s in bracket["group_standings"]] == ["TeamA", "TeamB"]
        assert bracket["phases"][0]["matches"][0]["state"] == "decided"
        assert seeded.get("/api/standings").json()["standings"][0]["rank"] == 1

    def test_qualification(self, seeded):
        data = seeded.get("/api/qualification/Ronda%201").json()
        assert data["source"] == "full_roster"
        assert data["teams"] == ["TeamA", "TeamB"]

    def test_audit_trail(self, seeded):
        seeded.put("/api/debate-state/round", json={"round_name": "Ronda 1"})
        entries = seeded.get("/api/audit", params={"limit": 1}).json()["entries"]
        assert entries[0]["action"] == "Changed active round"


class TestWebSocket:
    """Tests for the push channels."""

    def test_initial_state_and_ping(self, seeded):
        with seeded.websocket_connect("/ws/debate_state") as ws:
            initial = ws.receive_json()
            assert initial["type"] == "state"
            assert initial["channel"] == "debate_state"
            assert initial["data"]["currentRound"] == ""

            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

            ws.send_json({"type": "dance"})
            assert ws.receive_json()["type"] == "error"

    def test_push_after_write(self, seeded):
        with seeded.websocket_connect("/ws/debate_state") as ws:
            ws.receive_json()
            seeded.put("/api/debate-state/round", json={"round_name": "Ronda 1"})
            pushed = ws.receive_json()
            assert pushed["data"]["currentRound"] == "Ronda 1"
            assert pushed["data"]["teams"] == [{"name": "TeamA"}, {"name": "TeamB"}]

    def test_unknown_channel(self, seeded):
        with pytest.raises(WebSocketDisconnect):
            with seeded.websocket_connect("/ws/weather") as ws:
                ws.receive_json()


class FakeWebSocket:
    """Stands in for a Starlette WebSocket."""

    def __init__(self, broken=False):
        self.broken = broken
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        if self.broken:
            raise RuntimeError("connection closed")
        self.sent.append(message)


class TestConnectionManager:
    """Tests for ConnectionManager without a server."""

    def test_broadcast_drops_dead_sockets(self, service):
        manager = ConnectionManager(service)
        alive, dead = FakeWebSocket(), FakeWebSocket(broken=True)

        async def scenario():
            await manager.connect(alive, "scores")
            await manager.connect(dead, "scores")
            await manager.broadcast("scores", {"type": "state"})

        asyncio.run(scenario())
        assert alive.accepted
        assert alive.sent == [{"type": "state"}]
        assert manager.connections["scores"] == {alive}
        assert dead not in manager.socket_channels

    def test_publish_on_store_write(self, service):
        manager = ConnectionManager(service)
        display = FakeWebSocket()

        async def scenario():
            manager.start(asyncio.get_running_loop())
            await manager.connect(display, "debate_state")
            service.update_presentation(question="Q1")
            await asyncio.sleep(0.05)
            manager.stop()

        asyncio.run(scenario())
        assert len(display.sent) == 1
        assert display.sent[0]["channel"] == "debate_state"
        assert display.sent[0]["data"]["question"] == "Q1"

    def test_handler_get_state(self, service):
        manager = ConnectionManager(service)
        handler = ChannelWebSocketHandler(manager)
        display = FakeWebSocket()

        async def scenario():
            await manager.connect(display, "tiebreak")
            await handler.handle_message(display, "tiebreak", {"type": "get_state"})

        asyncio.run(scenario())
        assert display.sent == [{"type": "state", "channel": "tiebreak", "data": None}]


class TestTournamentService:
    """Service-level operations not covered over HTTP."""

    def test_set_active_round_with_unknown_drawn_team(self, service):
        service.add_team("TeamA", verified=True)
        service.create_round("Ronda 1", GROUP_STAGE)
        service.storage.set_document("drawState", "liveDraw", {'teams': [
            {'id': 'x', 'name': 'TeamA', 'round': 'Ronda 1'},
            {'id': 'y', 'name': 'Ghost', 'round': 'Ronda 1'},
        ]})
        with pytest.raises(UnknownTeamError):
            service.set_active_round("Ronda 1")

    def test_semifinal_suggestion(self, service):
        for name in ["TeamA", "TeamB", "TeamC", "TeamD", "TeamE"]:
            service.add_team(name, verified=True)
        service.add_judge("Ana", judge_id="judge-1")
        service.create_round("Ronda 1", GROUP_STAGE)
        service.create_round("Semifinal 1", SEMIFINAL_STAGE)
        service.add_criterion("Puntos", criterion_id="p")
        service.submit_scores("Ronda 1", "judge-1", {
            "TeamA": {"p": 5}, "TeamB": {"p": 4}, "TeamC": {"p": 3},
            "TeamD": {"p": 2}, "TeamE": {"p": 1},
        })

        state = service.set_active_round("Semifinal 1")
        assert state.teams == ["TeamA", "TeamB", "TeamC", "TeamD"]

    def test_inactive_judge(self, service):
        service.add_team("TeamA", verified=True)
        service.add_judge("Eva", judge_id="judge-3", active=False)
        service.create_round("Ronda 1", GROUP_STAGE)
        with pytest.raises(InvalidSubmissionError) as exc_info:
            service.submit_scores("Ronda 1", "judge-3", {"TeamA": {"p": 1}})
        assert "not active" in str(exc_info.value)

    def test_manual_bracket(self, service):
        service.add_team("TeamA", verified=True)
        service.add_team("TeamB", verified=True)
        service.add_judge("Ana", judge_id="judge-1")
        service.save_manual_bracket([
            {'id': 'sf', 'title': 'Semifinal', 'matches': [
                {'id': 'Semifinal 1', 'participants': [{'id': 'a', 'name': 'TeamA'}, {'id': 'b', 'name': 'TeamB'}]},
            ]},
            {'id': 'f', 'title': 'Final', 'matches': [
                {'id': 'Final', 'participants': [None, None]},
            ]},
        ])
        service.create_round("Semifinal 1", SEMIFINAL_STAGE)
        service.add_criterion("Puntos", criterion_id="p")
        service.submit_scores("Semifinal 1", "judge-1", {"TeamA": {"p": 2}, "TeamB": {"p": 5}})

        bracket = service.manual_bracket()
        assert bracket[0]['matches'][0]['nextMatchId'] == 'Final'
        assert bracket[1]['matches'][0]['participants'] == [{'id': 'b', 'name': 'TeamB'}, None]

    def test_locked_roster_after_close(self, service):
        service.add_team("TeamA", verified=True)
        service.add_team("TeamB")
        service.update_settings(registrations_closed=True)
        with pytest.raises(TournamentStateError):
            service.add_team("TeamC", verified=True)
        assert service.storage.load_roster() == ["TeamA"]

    def test_unknown_channel(self, service):
        with pytest.raises(KeyError):
            service.snapshot("weather")
        with pytest.raises(KeyError):
            service.subscribe("weather", lambda channel, data: None)
