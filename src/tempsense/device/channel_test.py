import threading
import unittest

from hamcrest import assert_that, calling, is_, raises

from tempsense.device.channel import Channel, ChannelClosedError, channel_pair


class ChannelTest(unittest.TestCase):

    def test_empty_channel_receives_none(self):
        sut = Channel()
        assert_that(sut.try_receive(), is_(None))

    def test_messages_are_received_in_order(self):
        sut = Channel()
        for i in range(3):
            sut.send(i)
        assert_that([sut.try_receive() for i in range(4)], is_([0, 1, 2, None]))

    def test_send_to_closed_channel_raises(self):
        sut = Channel("ESP1.commands")
        sut.close()
        assert_that(sut.closed, is_(True))
        assert_that(calling(sut.send).with_args("hello"), raises(ChannelClosedError, "ESP1.commands"))

    def test_queued_messages_are_received_after_close(self):
        sut = Channel()
        sut.send(1)
        sut.close()
        assert_that(sut.try_receive(), is_(1))
        assert_that(calling(sut.try_receive), raises(ChannelClosedError))

    def test_close_is_idempotent(self):
        sut = Channel()
        sut.close()
        sut.close()
        assert_that(sut.closed, is_(True))

    def test_messages_cross_threads(self):
        sut = Channel()
        sender = threading.Thread(target=lambda: [sut.send(i) for i in range(100)])
        sender.start()
        sender.join()
        received = []
        message = sut.try_receive()
        while message is not None:
            received.append(message)
            message = sut.try_receive()
        assert_that(received, is_(list(range(100))))

    def test_channel_pair(self):
        commands, status = channel_pair("ESP2")
        assert_that(commands.name, is_("ESP2.commands"))
        assert_that(status.name, is_("ESP2.status"))
        assert_that(commands is status, is_(False))
