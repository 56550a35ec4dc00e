"""
Tests for the admin command line tools.
"""
import pytest

from ledgervote.cli import build_parser, run

from conftest import OTHER_VOTER, OUTSIDER, OWNER, T0, VOTER


async def admin(make_ledger, *argv, identity=OWNER) -> int:
    args = build_parser().parse_args(list(argv))
    return await run(args, ledger=make_ledger(identity))


class TestParser:
    def test_defaults_sign_as_owner(self):
        args = build_parser().parse_args(["set-admin", VOTER])

        assert args.identity.lower() == OWNER
        assert args.admin_identity == VOTER

    def test_period_arguments(self):
        args = build_parser().parse_args(["--as", VOTER, "period", "10", "20", "--exact"])

        assert args.identity == VOTER
        assert (args.start, args.end, args.exact) == (10, 20, True)


class TestCommands:
    """Commands run against the ledger host."""

    @pytest.mark.asyncio
    async def test_add_and_list_candidates(self, make_ledger, capsys):
        assert await admin(make_ledger, "add", "Alice", "Smith") == 0
        assert await admin(make_ledger, "candidates") == 0

        out = capsys.readouterr().out
        assert "Adding candidate 'Alice Smith'" in out
        assert "Done. Tx: 0x" in out
        assert "   0  Alice Smith" in out

    @pytest.mark.asyncio
    async def test_outsider_is_refused(self, make_ledger, capsys):
        code = await admin(make_ledger, "add", "Mallory", identity=OUTSIDER)

        assert code == 1
        assert "Failed: Only the owner or admin can perform this action" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_period_is_aligned_to_ledger_clock(self, make_ledger, capsys):
        assert await admin(make_ledger, "period", str(T0), str(T0 + 30)) == 0

        assert f"Voting period: [{T0 + 60}, {T0 + 120})" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_exact_period(self, make_ledger, capsys):
        assert await admin(make_ledger, "period", "--exact", str(T0), str(T0 + 30)) == 0

        assert f"Voting period: [{T0}, {T0 + 30})" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_invalid_window(self, make_ledger, capsys):
        assert await admin(make_ledger, "period", str(T0 + 30), str(T0)) == 1

        assert "Failed: End time must be after start time" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_results_report_tie(self, make_ledger, owner_ledger, capsys):
        await owner_ledger.add_candidate("Alice")
        await owner_ledger.add_candidate("Bob")
        await owner_ledger.set_voting_period(T0, T0 + 60)
        await make_ledger(VOTER).vote(0)
        await make_ledger(OTHER_VOTER).vote(1)

        assert await admin(make_ledger, "results") == 0

        out = capsys.readouterr().out
        assert "Round 1" in out
        assert "50.00%" in out
        assert "Tie: Alice, Bob (1 votes each)" in out

    @pytest.mark.asyncio
    async def test_set_admin_then_admin_can_manage(self, make_ledger, capsys):
        assert await admin(make_ledger, "set-admin", VOTER) == 0
        assert await admin(make_ledger, "who") == 0
        assert await admin(make_ledger, "add", "Carol", identity=VOTER) == 0

        assert f"Admin: {VOTER}" in capsys.readouterr().out
