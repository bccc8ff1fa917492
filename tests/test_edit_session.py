from __future__ import annotations

from cosmic_wallpaper.session.edit_session import EditSession, SessionState


def test_starts_idle():
    session = EditSession()

    assert session.state is SessionState.IDLE
    assert session.active is None
    assert not session.can_undo
    assert not session.can_redo


def test_undo_then_redo_restores_the_same_artifact(artifact_factory):
    a, b = artifact_factory("a"), artifact_factory("b", 1)
    session = EditSession()
    session.select(a)
    session.apply_result(b)

    assert session.undo() is a
    assert session.can_redo
    assert session.redo() is b
    assert session.active is b
    assert session.undo_stack == [a]
    assert session.redo_stack == []


def test_new_edit_after_undo_discards_redo_branch(artifact_factory):
    a, b, c = (artifact_factory(i, n) for n, i in enumerate("abc"))
    session = EditSession()
    session.select(a)
    session.apply_result(b)
    session.undo()

    session.apply_result(c)

    assert session.active is c
    assert session.undo_stack == [a]
    assert not session.can_redo


def test_select_clears_both_stacks(artifact_factory):
    a, b, c = (artifact_factory(i, n) for n, i in enumerate("abc"))
    session = EditSession()
    session.select(a)
    session.apply_result(b)
    session.undo()

    session.select(c)

    assert session.active is c
    assert session.undo_stack == []
    assert session.redo_stack == []


def test_undo_and_redo_on_empty_stacks_are_noops(artifact_factory):
    a = artifact_factory("a")
    session = EditSession()
    session.select(a)

    assert session.undo() is a
    assert session.redo() is a
    assert session.undo_stack == [] and session.redo_stack == []


def test_first_result_without_selection_has_nothing_to_undo(artifact_factory):
    session = EditSession()

    session.apply_result(artifact_factory("a"))

    assert session.state is SessionState.ACTIVE
    assert not session.can_undo


def test_clear_returns_to_idle(artifact_factory):
    session = EditSession()
    session.select(artifact_factory("a"))
    session.apply_result(artifact_factory("b", 1))

    session.clear()

    assert session.state is SessionState.IDLE
    assert not session.can_undo
    assert not session.references("b")


def test_undo_redo_leaves_stacks_as_they_were(artifact_factory):
    a0, a1, a2 = (artifact_factory(f"a{n}", n) for n in range(3))
    session = EditSession()
    session.select(a0)
    session.apply_result(a1)
    session.apply_result(a2)
    before = (list(session.undo_stack), list(session.redo_stack))

    session.undo()
    session.redo()

    assert session.active is a2
    assert (session.undo_stack, session.redo_stack) == before


def test_fork_from_middle_of_history(artifact_factory):
    a0, a1, a2, a3 = (artifact_factory(f"a{n}", n) for n in range(4))
    session = EditSession()
    session.select(a0)
    session.apply_result(a1)
    session.apply_result(a2)
    session.undo()
    assert (session.active, session.undo_stack, session.redo_stack) == (a1, [a0], [a2])

    session.apply_result(a3)

    assert session.active is a3
    assert session.undo_stack == [a0, a1]
    assert session.redo_stack == []
