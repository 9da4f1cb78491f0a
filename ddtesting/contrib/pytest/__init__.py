"""
The pytest integration records every test of a session.

Enabling
~~~~~~~~

Enable recording of tests run by ``pytest`` by running ``pytest --ddtesting``, by setting
``DD_TESTING_ENABLED=true``, or by modifying any configuration file read by pytest (``pytest.ini``,
``setup.cfg``, ...)::

    [pytest]
    ddtesting = 1

Tags can be added to the record of a test with the ``dd_tags`` marker::

    @pytest.mark.dd_tags(team="checkout")
    def test_payment():
        ...

The record of the running test is available through the ``ddtesting_span`` fixture.
"""
