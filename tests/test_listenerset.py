from gateway_auto_listener.listenerset import ListenerSet


class TestListenerSet:

    def test_from_annotation(self):
        names = ListenerSet.from_annotation("https-a-com, https-b-com,,https-a-com")

        assert list(names) == ["https-a-com", "https-b-com"]

    def test_empty(self):
        assert len(ListenerSet.from_annotation(None)) == 0
        assert len(ListenerSet.from_annotation("")) == 0
        assert ListenerSet().to_annotation() == ""

    def test_to_annotation_keeps_order(self):
        names = ListenerSet(["https-c-com", "https-a-com", "https-b-com"])

        assert names.to_annotation() == "https-c-com,https-a-com,https-b-com"
        assert ListenerSet.from_annotation(names.to_annotation()) == names

    def test_set_semantics(self):
        left = ListenerSet(["https-a-com", "https-b-com"])
        right = ListenerSet(["https-b-com", "https-c-com"])

        assert left == ListenerSet(["https-b-com", "https-a-com"])
        assert left == {"https-a-com", "https-b-com"}
        assert list(left - right) == ["https-a-com"]
        assert "https-b-com" in left & right
        assert "https-c-com" not in left

    def test_with_name(self):
        names = ListenerSet(["https-a-com"]).with_name("https-b-com").with_name("https-a-com")

        assert list(names) == ["https-a-com", "https-b-com"]
