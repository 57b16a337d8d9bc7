"""Let pytest run the testscenarios-based suite.

stestr expands ``scenarios`` itself; pytest does not, so each scenario
is collected here as a subclass carrying that scenario's attributes.
"""
import inspect
import unittest

from _pytest.unittest import UnitTestCase


def pytest_pycollect_makeitem(collector, name, obj):
    if not (inspect.isclass(obj) and issubclass(obj, unittest.TestCase)):
        return None
    scenarios = getattr(obj, 'scenarios', None)
    if not scenarios:
        return None
    items = []
    for scenario_name, params in scenarios:
        attrs = dict(params)
        attrs['scenarios'] = None
        attrs['__module__'] = obj.__module__
        variant = type(obj.__name__, (obj,), attrs)
        item = UnitTestCase.from_parent(
            collector, name='{0}({1})'.format(name, scenario_name))
        item._obj = variant
        items.append(item)
    return items
