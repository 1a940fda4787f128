import asyncio

import pytest

from activeftp.protocol.channel import ControlChannel
from activeftp.protocol.errors import ConnectionClosed
from activeftp.protocol.messages import ReplyCode
from activeftp.server.dispatcher import CommandDispatcher
from activeftp.server.listener import FtpServer
from activeftp.transfer.dataport import DataListener


async def open_control(server):
    channel = await ControlChannel.connect('127.0.0.1', server.port)
    greeting = await channel.read_reply()
    assert greeting.code == ReplyCode.GREETING
    return channel


async def login(channel, user='alice', password='correctpass'):
    await channel.send_command('USER', user)
    await channel.expect_reply(ReplyCode.NEED_PASSWORD)
    await channel.send_command('PASS', password)
    return await channel.read_reply()


async def assert_closed(channel):
    with pytest.raises(ConnectionClosed):
        await channel.read_reply()
    await channel.close()


def test_greeting_comes_first(with_server):
    async def scenario(server):
        channel = await ControlChannel.connect('127.0.0.1', server.port)
        reply = await channel.read_reply()
        await channel.close()
        return reply

    reply = with_server(scenario)
    assert reply.code == 220
    assert reply.text.startswith('activeftp version')


def test_wrong_password_closes_session(with_server):
    async def scenario(server):
        channel = await open_control(server)
        reply = await login(channel, 'alice', 'wrongpass')
        assert reply.code == ReplyCode.LOGIN_INCORRECT
        await assert_closed(channel)

    with_server(scenario)


def test_login_then_quit(with_server):
    async def scenario(server):
        channel = await open_control(server)
        reply = await login(channel)
        assert reply.code == ReplyCode.LOGGED_IN
        assert reply.text == 'User alice logged in'

        await channel.send_command('QUIT')
        assert (await channel.read_reply()).code == ReplyCode.GOODBYE
        await assert_closed(channel)

    with_server(scenario)


def test_password_required_names_the_user(with_server):
    async def scenario(server):
        channel = await open_control(server)
        await channel.send_command('USER', 'bob')
        reply = await channel.read_reply()
        await channel.close()
        return reply

    assert with_server(scenario).text == 'Password required for bob'


def test_pass_before_user_is_rejected(with_server):
    async def scenario(server):
        channel = await open_control(server)
        await channel.send_command('PASS', 'correctpass')
        assert (await channel.read_reply()).code == ReplyCode.LOGIN_INCORRECT
        await assert_closed(channel)

    with_server(scenario)


def test_command_before_login_is_rejected(with_server):
    async def scenario(server):
        channel = await open_control(server)
        await channel.send_command('RETR', 'anything.txt')
        assert (await channel.read_reply()).code == ReplyCode.LOGIN_INCORRECT
        await assert_closed(channel)

    with_server(scenario)


def test_unrecognized_verb_keeps_session_open(with_server):
    async def scenario(server):
        channel = await open_control(server)
        await login(channel)

        await channel.send_command('NOOP')
        reply = await channel.read_reply()
        assert reply.code == ReplyCode.UNRECOGNIZED
        assert 'NOOP' in reply.text

        # A second typo is still answered
        await channel.send_command('RERT', 'x.txt')
        assert (await channel.read_reply()).code == ReplyCode.UNRECOGNIZED

        await channel.send_command('QUIT')
        assert (await channel.read_reply()).code == ReplyCode.GOODBYE
        await channel.close()

    with_server(scenario)


def test_retr_missing_file_makes_no_data_connection(with_server):
    async def scenario(server):
        channel = await open_control(server)
        await login(channel)

        listener = DataListener('127.0.0.1')
        endpoint = await listener.open()
        try:
            await channel.send_command('PORT', endpoint.to_port_argument())
            assert (await channel.read_reply()).code == ReplyCode.PORT_OK

            await channel.send_command('RETR', 'missing.txt')
            reply = await channel.read_reply()
            assert reply.code == ReplyCode.NOT_FOUND
            assert reply.text == 'missing.txt: no such file or directory'

            await asyncio.sleep(0.2)
            assert not listener.accepted.done()
        finally:
            await listener.close()

        # The session survives a 550
        await channel.send_command('QUIT')
        assert (await channel.read_reply()).code == ReplyCode.GOODBYE
        await channel.close()

    with_server(scenario)


def test_retr_outside_root_is_not_found(with_server, server_root):
    (server_root.parent / 'secret.txt').write_text('top secret')

    async def scenario(server):
        channel = await open_control(server)
        await login(channel)
        await channel.send_command('RETR', '../secret.txt')
        reply = await channel.read_reply()
        await channel.close()
        return reply

    assert with_server(scenario).code == ReplyCode.NOT_FOUND


def test_retr_without_port(with_server, server_root):
    (server_root / 'a.txt').write_text('hello')

    async def scenario(server):
        channel = await open_control(server)
        await login(channel)
        await channel.send_command('RETR', 'a.txt')
        reply = await channel.read_reply()
        await channel.close()
        return reply

    assert with_server(scenario).code == ReplyCode.CANT_OPEN_DATA


@pytest.mark.parametrize('verb,parameter', [
    ('PORT', '127,0,0,1,200'),
    ('PORT', '127,0,0,300,1,1'),
    ('STOR', 'no-size-given.txt'),
])
def test_malformed_parameters_end_the_session(with_server, verb, parameter):
    async def scenario(server):
        channel = await open_control(server)
        await login(channel)
        await channel.send_command(verb, parameter)
        assert (await channel.read_reply()).code == ReplyCode.GOODBYE
        await assert_closed(channel)

    with_server(scenario)


def test_malformed_line_ends_the_session(with_server):
    async def scenario(server):
        channel = await open_control(server)
        await login(channel)
        await channel.send_line(b'AB\r\n')
        assert (await channel.read_reply()).code == ReplyCode.GOODBYE
        await assert_closed(channel)

    with_server(scenario)


def test_finished_sessions_are_reaped(with_server):
    async def scenario(server):
        for _ in range(3):
            channel = await open_control(server)
            await login(channel)
            await channel.send_command('QUIT')
            await channel.read_reply()
            await channel.close()

        for _ in range(50):
            if server.active_sessions == 0:
                break
            await asyncio.sleep(0.05)
        return server.get_stats()

    stats = with_server(scenario)
    assert stats['active_sessions'] == 0
    assert stats['sessions_served'] == 3


def test_sessions_run_concurrently(with_server):
    async def scenario(server):
        # An idle session must not block a second one
        idle = await open_control(server)
        busy = await open_control(server)
        reply = await login(busy)
        await busy.close()
        await idle.close()
        return reply

    assert with_server(scenario).code == ReplyCode.LOGGED_IN


def test_server_lifecycle(config):
    async def main():
        server = FtpServer(config, port=0)
        assert not server.is_running
        await server.start()
        assert server.is_running
        assert server.port != 0
        await server.stop()
        assert not server.is_running

    asyncio.run(main())


def test_nul_in_file_name_is_not_found(with_server):
    async def scenario(server):
        channel = await open_control(server)
        await login(channel)

        await channel.send_command('RETR', 'a\x00b.txt')
        retr = await channel.read_reply()
        await channel.send_command('STOR', 'a\x00b.txt//3')
        stor = await channel.read_reply()

        await channel.send_command('QUIT')
        goodbye = await channel.read_reply()
        await channel.close()
        return retr, stor, goodbye

    retr, stor, goodbye = with_server(scenario)
    assert retr.code == ReplyCode.NOT_FOUND
    assert stor.code == ReplyCode.NOT_FOUND
    assert goodbye.code == ReplyCode.GOODBYE


def test_login_verbs_after_login_are_unrecognized(with_server):
    async def scenario(server):
        channel = await open_control(server)
        await login(channel)

        await channel.send_command('USER', 'bob')
        user = await channel.read_reply()
        await channel.send_command('PASS', 'hunter2')
        password = await channel.read_reply()

        await channel.send_command('QUIT')
        assert (await channel.read_reply()).code == ReplyCode.GOODBYE
        await channel.close()
        return user, password

    user, password = with_server(scenario)
    assert user.code == ReplyCode.UNRECOGNIZED
    assert user.text == 'USER: command not understood'
    assert password.code == ReplyCode.UNRECOGNIZED


def test_dispatcher_refuses_login_verbs():
    dispatcher = CommandDispatcher()

    async def handler(session, command):
        pass

    with pytest.raises(ValueError):
        dispatcher.set_handler('USER', handler)
    with pytest.raises(ValueError):
        dispatcher.set_handler('PASS', handler)
