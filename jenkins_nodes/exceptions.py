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
.. module:: jenkins_nodes.exceptions
    :platform: Unix, Windows
    :synopsis: Exception types raised by the Jenkins node client
'''


class JenkinsException(Exception):
    '''General exception type for jenkins-API-related failures.'''
    pass


class ConfigurationException(JenkinsException):
    '''Raised when the client is constructed with conflicting options.'''
    pass


class InvalidRequestException(JenkinsException):
    '''Raised when a request cannot be built from the given URL or path.'''
    pass


class CrumbException(JenkinsException):
    '''Raised when a CSRF crumb could not be obtained from the server.'''
    pass


class DecodeException(JenkinsException):
    '''Raised when a JSON or XML payload cannot be decoded.

    :param stapler_class: discriminator of the element being decoded, if
                          any, ``str``
    '''

    def __init__(self, msg, stapler_class=None):
        super(DecodeException, self).__init__(msg)
        self.stapler_class = stapler_class


class RemoteException(JenkinsException):
    '''Raised when Jenkins answers with a status code of 300 or above.

    The raw ``requests.Response`` stays available as ``response`` so callers
    can inspect its headers and body.
    '''

    def __init__(self, msg, response):
        super(RemoteException, self).__init__(msg)
        self.response = response
        self.status_code = response.status_code
        self.reason = response.reason


class NotFoundException(RemoteException):
    '''A special exception to call out the case of receiving a 404.'''
    pass


class BadHTTPException(JenkinsException):
    '''A special exception to call out the case of a broken HTTP response.'''
    pass


class TimeoutException(JenkinsException):
    '''A special exception to call out in the case of a socket timeout.'''
