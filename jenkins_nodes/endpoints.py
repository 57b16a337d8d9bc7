#!/usr/bin/env python
# Software License Agreement (BSD License)
#
# Copyright (c) 2010, Willow Garage, Inc.
# All rights reserved.
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions
# are met:
#
#  * Redistributions of source code must retain the above copyright
#    notice, this list of conditions and the following disclaimer.
#  * Redistributions in binary form must reproduce the above
#    copyright notice, this list of conditions and the following
#    disclaimer in the documentation and/or other materials provided
#    with the distribution.
#  * Neither the name of Willow Garage, Inc. nor the names of its
#    contributors may be used to endorse or promote products derived
#    from this software without specific prior written permission.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS
# 'AS IS' AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT
# LIMITED TO, THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS
# FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE
# COPYRIGHT OWNER OR CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT,
# INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING,
# BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES;
# LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER
# CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT, STRICT
# LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN
# ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.

'''
.. module:: jenkins_nodes.endpoints
    :platform: Unix, Windows
    :synopsis: Route table for the Jenkins node REST endpoints
'''

from jenkins_nodes.exceptions import ConfigurationException


class Endpoints(object):
    '''Relative paths of the REST endpoints used by :class:`Jenkins`.

    Each attribute is a ``%``-style template joined onto the server URL.
    Templates may reference ``%(name)s`` (the URL quoted node name),
    ``%(depth)s`` and ``%(msg)s``. Servers with a non-default layout can be
    reached by overriding single routes::

        endpoints = Endpoints(CRUMB='jenkins/crumbIssuer/api/json')
        server = jenkins_nodes.Jenkins(url, endpoints=endpoints)
    '''

    CRUMB = 'crumbIssuer/api/json'
    NODE_LIST = 'computer/api/json'
    CREATE_NODE = 'computer/doCreateItem'
    CONFIG_NODE = 'computer/%(name)s/config.xml'
    DELETE_NODE = 'computer/%(name)s/doDelete'
    NODE_INFO = 'computer/%(name)s/api/json?depth=%(depth)s'
    TOGGLE_OFFLINE = 'computer/%(name)s/toggleOffline?offlineMessage=%(msg)s'

    def __init__(self, **routes):
        for route, path in routes.items():
            if not route.isupper() or not hasattr(Endpoints, route):
                raise ConfigurationException('unknown endpoint[%s]' % route)
            setattr(self, route, path)

    def routes(self):
        '''Return the effective route table.

        :returns: mapping of route name to path template, ``dict``
        '''
        return dict((route, getattr(self, route))
                    for route in dir(Endpoints) if route.isupper())
