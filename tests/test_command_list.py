"""Tests for the command-list state machine."""

from __future__ import annotations

import pytest

from mpd_mpris_bridge.protocol.command_list import (
    RESP_CLIST_VERBOSE,
    RESP_OK,
    CommandListMachine,
    ListState,
)
from mpd_mpris_bridge.protocol.errors import AckCode, MPDError


def test_outside_list_items_get_plain_ok() -> None:
    machine = CommandListMachine()
    assert machine.item_succeeded() == RESP_OK
    assert machine.state is ListState.IDLE
    assert machine.index == 0


def test_silent_list_emits_only_final_ok() -> None:
    machine = CommandListMachine()
    machine.begin(verbose=False)
    assert machine.state is ListState.COLLECTING
    assert machine.item_succeeded() == b""
    assert machine.item_succeeded() == b""
    assert machine.index == 2
    assert machine.end() == RESP_OK
    assert machine.state is ListState.ENDING
    machine.finish_cycle()
    assert machine.state is ListState.IDLE
    assert machine.index == 0


def test_verbose_list_emits_list_ok_per_item() -> None:
    machine = CommandListMachine()
    machine.begin(verbose=True)
    assert machine.item_succeeded() == RESP_CLIST_VERBOSE
    assert machine.item_succeeded() == RESP_CLIST_VERBOSE
    assert machine.end() == RESP_OK
    machine.finish_cycle()
    assert not machine.in_list


def test_failure_swallows_rest_and_end_is_silent() -> None:
    machine = CommandListMachine()
    machine.begin(verbose=True)
    machine.item_succeeded()
    assert machine.index == 1
    machine.item_failed()
    assert machine.state is ListState.FAILED
    assert machine.swallowing
    assert machine.item_succeeded() == b""
    assert machine.index == 1
    assert machine.end() == b""
    machine.finish_cycle()
    assert machine.state is ListState.IDLE


def test_end_outside_list_is_not_list_error() -> None:
    machine = CommandListMachine()
    with pytest.raises(MPDError) as excinfo:
        machine.end()
    assert excinfo.value.code is AckCode.NOT_LIST
    assert machine.state is ListState.IDLE


def test_nested_begin_is_rejected() -> None:
    machine = CommandListMachine()
    machine.begin(verbose=False)
    with pytest.raises(MPDError) as excinfo:
        machine.begin(verbose=True)
    assert excinfo.value.message == "already in command list"
    assert machine.state is ListState.COLLECTING


def test_finish_cycle_without_end_keeps_list_open() -> None:
    machine = CommandListMachine()
    machine.begin(verbose=False)
    machine.finish_cycle()
    assert machine.state is ListState.COLLECTING


def test_ack_line_format() -> None:
    error = MPDError(AckCode.UNKNOWN, 'unknown command "bogus"', "bogus", 1)
    assert error.response() == b'ACK [5@1] {bogus} unknown command "bogus"\n'
