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
.. module:: jenkins_nodes
    :platform: Unix, Windows
    :synopsis: Python API to manage Jenkins nodes
    :noindex:

Usage::

    import jenkins_nodes

    server = jenkins_nodes.Jenkins('http://localhost:8080',
                                   username='admin', token='1234')
    node = server.create_node(jenkins_nodes.Node('agent1', labels='linux'))
    node = server.get_node('agent1')
'''

from collections import namedtuple
import json
import logging
import os
from urllib.parse import quote, urljoin, urlparse

import requests
from requests.cookies import merge_cookies
import requests.exceptions as req_exc
from requests.packages.urllib3.exceptions import InsecureRequestWarning

from jenkins_nodes.endpoints import Endpoints
from jenkins_nodes.exceptions import BadHTTPException
from jenkins_nodes.exceptions import ConfigurationException
from jenkins_nodes.exceptions import CrumbException
from jenkins_nodes.exceptions import DecodeException
from jenkins_nodes.exceptions import InvalidRequestException
from jenkins_nodes.exceptions import JenkinsException
from jenkins_nodes.exceptions import NotFoundException
from jenkins_nodes.exceptions import RemoteException
from jenkins_nodes.exceptions import TimeoutException
from jenkins_nodes.launchers import JNLPLauncher
from jenkins_nodes.launchers import KnownHostsFileKeyVerificationStrategy
from jenkins_nodes.launchers import LAUNCHER_JNLP
from jenkins_nodes.launchers import LAUNCHER_SSH
from jenkins_nodes.launchers import ManuallyProvidedKeyVerificationStrategy
from jenkins_nodes.launchers import ManuallyTrustedKeyVerificationStrategy
from jenkins_nodes.launchers import NonVerifyingKeyVerificationStrategy
from jenkins_nodes.launchers import SSHLauncher
from jenkins_nodes.launchers import UnknownKeyVerificationStrategy
from jenkins_nodes.launchers import UnknownLauncher
from jenkins_nodes.launchers import WorkDirSettings
from jenkins_nodes.nodes import MODE_EXCLUSIVE
from jenkins_nodes.nodes import MODE_NORMAL
from jenkins_nodes.nodes import Node
from jenkins_nodes.nodes import NODE_TYPE
from jenkins_nodes.nodes import NodeProperties
from jenkins_nodes.nodes import nodes_from_list
from jenkins_nodes.nodes import RETENTION_ALWAYS
from jenkins_nodes.nodes import RetentionStrategy

# Set default logging handler to avoid "No handler found" warnings.
logging.getLogger(__name__).addHandler(logging.NullHandler())

logger = logging.getLogger(__name__)

DEFAULT_URL = 'http://127.0.0.1:8080'
DEFAULT_HEADERS = {'Content-Type': 'text/xml; charset=utf-8'}
FORM_HEADERS = {'Content-Type': 'application/x-www-form-urlencoded'}

Crumb = namedtuple('Crumb', ['field_name', 'value'])


class WrappedSession(requests.Session):
    """A wrapper for requests.Session to override 'verify' property, ignoring REQUESTS_CA_BUNDLE environment variable.

    This is a workaround for https://github.com/kennethreitz/requests/issues/3829 (will be fixed in requests 3.0.0)
    """

    def merge_environment_settings(self, url, proxies, stream, verify, *args,
                                   **kwargs):
        if self.verify is False:
            verify = False

        return super(WrappedSession, self).merge_environment_settings(url,
                                                                      proxies,
                                                                      stream,
                                                                      verify,
                                                                      *args,
                                                                      **kwargs)


class Jenkins(object):
    '''Handle to the node management API of a Jenkins server.

    A handle holds one session: its cookies, its credentials and the crumb
    fetched for the next mutating request. Read-only calls can be shared
    between threads, but mutating calls (create, update, delete, toggle)
    must not overlap on the same handle since each one fetches a crumb and
    spends it on the request that follows. Use one handle per worker or
    serialize those calls.
    '''

    def __init__(self, url=DEFAULT_URL, username=None, password=None,
                 token=None, session=None, user_agent=None, timeout=None,
                 endpoints=None):
        '''Create handle to Jenkins instance.

        All methods will raise :class:`JenkinsException` on failure.

        :param url: URL of Jenkins server, ``str``
        :param username: Server username, ``str``
        :param password: Server password, ``str``
        :param token: Server API token, used instead of ``password``, ``str``
        :param session: Pre-configured session to send requests with,
                        ``requests.Session``
        :param user_agent: User-Agent header sent with every request, ``str``
        :param timeout: Server connection timeout in secs (default: not set),
                        ``int``
        :param endpoints: Route table of the server, :class:`Endpoints`
        '''
        if not url:
            raise ConfigurationException('server URL is required')
        if password is not None and token is not None:
            raise ConfigurationException(
                'cannot set both API token and password')
        secret = password if password is not None else token
        if secret is not None and username is None:
            raise ConfigurationException(
                'username is required with a password or API token')

        if url[-1] == '/':
            self.server = url
        else:
            self.server = url + '/'

        self.username = username
        self.user_agent = user_agent
        self.timeout = timeout
        self.endpoints = endpoints if endpoints is not None else Endpoints()
        self.crumb = None

        if session is None:
            session = WrappedSession()
        self._session = session
        if secret is not None:
            self._session.auth = requests.auth.HTTPBasicAuth(
                username.encode('utf-8'), secret.encode('utf-8'))
        self.auth = self._session.auth

        extra_headers = os.environ.get("JENKINS_API_EXTRA_HEADERS", "")
        if extra_headers:
            logger.warning("JENKINS_API_EXTRA_HEADERS adds these HTTP headers: %s", extra_headers.split("\n"))
        for line in extra_headers.split("\n"):
            if ":" in line:
                header, value = line.split(":", 1)
                self._session.headers[header] = value.strip()

        if os.getenv('PYTHONHTTPSVERIFY', '1') == '0':
            logger.debug('PYTHONHTTPSVERIFY=0 detected so we will '
                         'disable requests library SSL verification to keep '
                         'compatibility with older versions.')
            requests.packages.urllib3.disable_warnings(InsecureRequestWarning)
            self._session.verify = False

    def _get_encoded_params(self, params):
        for k, v in params.items():
            if k in ["name", "msg"]:
                if not isinstance(v, str):
                    raise InvalidRequestException(
                        'Invalid %s[%r] in request path' % (k, v))
                params[k] = quote(v.encode('utf8'))
        return params

    def _build_url(self, format_spec, variables=None):

        if variables:
            url_path = format_spec % self._get_encoded_params(dict(variables))
        else:
            url_path = format_spec

        return str(urljoin(self.server, url_path.lstrip('/')))

    def build_request(self, method, path, data=None, headers=None,
                      variables=None):
        '''Build a request for ``path`` relative to the server URL.

        :param method: HTTP method, ``str``
        :param path: path template, usually an :class:`Endpoints` route,
                     ``str``
        :param data: request body, ``dict``, ``bytes`` or ``None``
        :param headers: extra request headers, ``dict``
        :param variables: values substituted into ``path`` (node names are
                          URL quoted), ``dict``
        :returns: ``requests.Request``
        :throws: :class:`InvalidRequestException` if no valid URL results
        '''
        if not isinstance(path, str):
            raise InvalidRequestException('Invalid request path[%r]' % (path,))
        try:
            url = self._build_url(path, variables)
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidRequestException(
                'Could not build URL from path[%s]: %r' % (path, e))

        parsed = urlparse(url)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise InvalidRequestException('Invalid request URL[%s]' % url)

        req = requests.Request(method, url, data=data,
                               headers=dict(headers or {}))
        if self.user_agent:
            req.headers['User-Agent'] = self.user_agent
        return req

    def _add_crumb(self, req):
        if self.crumb is None:
            logger.warning('No crumb held, sending %s %s without one',
                           req.method, req.url)
            return
        req.headers[self.crumb.field_name] = self.crumb.value
        # crumbs are only valid for one request
        self.crumb = None

    def build_form_request(self, path, values, variables=None):
        '''Build a mutating form POST, spending the held crumb on it.

        :param path: path template, ``str``
        :param values: form fields, ``dict``
        :param variables: values substituted into ``path``, ``dict``
        :returns: ``requests.Request``
        '''
        req = self.build_request('POST', path, data=values,
                                 headers=FORM_HEADERS, variables=variables)
        self._add_crumb(req)
        return req

    def build_xml_request(self, path, config_xml=None, variables=None):
        '''Build a mutating XML POST, spending the held crumb on it.

        :param path: path template, ``str``
        :param config_xml: XML document to post, ``str``
        :param variables: values substituted into ``path``, ``dict``
        :returns: ``requests.Request``
        '''
        if isinstance(config_xml, str):
            config_xml = config_xml.encode('utf-8')
        req = self.build_request('POST', path, data=config_xml,
                                 headers=DEFAULT_HEADERS, variables=variables)
        self._add_crumb(req)
        return req

    def refresh_crumb(self):
        '''Fetch the CSRF crumb for the next mutating request.

        :returns: the new crumb, :class:`Crumb`
        :throws: :class:`CrumbException` if the crumb issuer could not be
                 reached or its answer could not be parsed
        '''
        self.crumb = None
        req = self.build_request('GET', self.endpoints.CRUMB)
        try:
            response = self.jenkins_open(req)
        except JenkinsException as e:
            raise CrumbException('Error fetching crumb from server[%s]: %s'
                                 % (self.server, e))
        try:
            data = json.loads(response)
            crumb = Crumb(data['crumbRequestField'], data['crumb'])
        except (ValueError, KeyError, TypeError):
            raise CrumbException('Could not parse crumb from server[%s]'
                                 % self.server)

        logger.debug('Fetched crumb for header %s', crumb.field_name)
        self.crumb = crumb
        return crumb

    def _response_handler(self, response):
        '''Handle response objects'''

        # cookies are kept whatever the status, Jenkins sets its session
        # cookie on redirects and authentication challenges too
        merge_cookies(self._session.cookies, response.cookies)

        if response.status_code < 300:
            return response

        # Jenkins's funky authentication means its nigh impossible to
        # distinguish errors.
        if response.status_code in [401, 403, 500]:
            msg = 'Error in request. ' + \
                  'Possibly authentication failed [%s]: %s' % (
                      response.status_code, response.reason)
            if response.text:
                msg += '\n' + response.text
            raise RemoteException(msg, response)
        elif response.status_code == 404:
            raise NotFoundException('Requested item could not be found',
                                    response)
        raise RemoteException('Error in request [%s]: %s' % (
            response.status_code, response.reason), response)

    def _request(self, req):

        r = self._session.prepare_request(req)
        # requests.Session.send() does not honor env settings by design
        # see https://github.com/requests/requests/issues/2807
        _settings = self._session.merge_environment_settings(
            r.url, {}, None, self._session.verify, None)
        _settings['timeout'] = self.timeout
        logger.debug('%s %s', r.method, r.url)
        return self._session.send(r, **_settings)

    def jenkins_open(self, req):
        '''Return the HTTP response body from a ``requests.Request``.

        :returns: ``str``
        '''
        return self.jenkins_request(req).text

    def jenkins_request(self, req):
        '''Utility routine for opening an HTTP request to a Jenkins server.

        Cookies set by the server are stored in the session even when the
        request fails.

        :param req: A ``requests.Request`` to submit.
        :returns: A ``requests.Response`` object.
        :throws: :class:`RemoteException` for any status of 300 or above,
                 with the response attached
        '''
        try:
            return self._response_handler(self._request(req))
        except req_exc.Timeout as e:
            raise TimeoutException('Error in request: %s' % (e))
        except (req_exc.MissingSchema, req_exc.InvalidSchema,
                req_exc.InvalidURL) as e:
            raise InvalidRequestException('Error in request: %s' % (e))
        except req_exc.ConnectionError as e:
            raise BadHTTPException("Error communicating with server[%s]: %s"
                                   % (self.server, e))

    def post_form(self, path, values, variables=None):
        '''Fetch a crumb, then POST ``values`` as a form to ``path``.

        :returns: ``requests.Response``
        '''
        self.refresh_crumb()
        try:
            req = self.build_form_request(path, values, variables)
        finally:
            # a crumb fetched for a request that was never built is stale
            self.crumb = None
        return self.jenkins_request(req)

    def post_xml(self, path, config_xml=None, variables=None):
        '''Fetch a crumb, then POST the ``config_xml`` document to ``path``.

        :returns: ``requests.Response``
        '''
        self.refresh_crumb()
        try:
            req = self.build_xml_request(path, config_xml, variables)
        finally:
            self.crumb = None
        return self.jenkins_request(req)

    def get_nodes(self):
        '''Get a list of nodes connected to the Master

        Only the name and description of each node are filled in.

        :returns: List of nodes, ``[ Node ]``
        '''
        response = self.jenkins_open(
            self.build_request('GET', self.endpoints.NODE_LIST))
        try:
            nodes_data = json.loads(response)
        except ValueError:
            raise DecodeException("Could not parse JSON info for server[%s]"
                                  % self.server)
        return nodes_from_list(nodes_data)

    def get_node_info(self, name, depth=0):
        '''Get node information dictionary

        :param name: Node name, ``str``
        :param depth: JSON depth, ``int``
        :returns: Dictionary of node info, ``dict``
        '''
        try:
            response = self.jenkins_open(self.build_request(
                'GET', self.endpoints.NODE_INFO,
                variables={'name': name, 'depth': depth}))
        except NotFoundException as e:
            raise NotFoundException('node[%s] does not exist' % name,
                                    e.response)
        try:
            return json.loads(response)
        except ValueError:
            raise DecodeException("Could not parse JSON info for node[%s]"
                                  % name)

    def node_exists(self, name):
        '''Check whether a node exists

        :param name: Name of Jenkins node, ``str``
        :returns: ``True`` if Jenkins node exists
        '''
        try:
            self.get_node_info(name)
            return True
        except NotFoundException:
            return False

    def assert_node_exists(self, name,
                           exception_message='node[%s] does not exist'):
        '''Raise an exception if a node does not exist

        :param name: Name of Jenkins node, ``str``
        :param exception_message: Message to use for the exception. Formatted
                                  with ``name``
        :throws: :class:`JenkinsException` whenever the node does not exist
        '''
        if not self.node_exists(name):
            raise JenkinsException(exception_message % name)

    def create_node(self, node):
        '''Create a node

        Unset fields of ``node`` are filled with their defaults first, see
        :meth:`Node.fill_defaults`.

        :param node: node to create, :class:`Node`
        :returns: the created node, :class:`Node`
        '''
        node.fill_defaults()
        self.post_form(self.endpoints.CREATE_NODE, node.to_form())
        return node

    def _get_node_config_response(self, name):
        try:
            return self.jenkins_request(self.build_request(
                'GET', self.endpoints.CONFIG_NODE, variables={'name': name}))
        except NotFoundException as e:
            raise NotFoundException('node[%s] does not exist' % name,
                                    e.response)

    def get_node(self, name):
        '''Get the configuration of a node.

        :param name: Jenkins node name, ``str``
        :returns: :class:`Node`
        :throws: :class:`NotFoundException` if the node does not exist
        '''
        return Node.from_xml(self._get_node_config_response(name).content)

    def get_node_config(self, name):
        '''Get the configuration for a node.

        :param name: Jenkins node name, ``str``
        :returns: config.xml of the node, ``str``
        '''
        return self._get_node_config_response(name).text

    def update_node(self, node):
        '''Replace the configuration of an existing node.

        :param node: node configuration, looked up by ``node.name``,
                     :class:`Node`
        :returns: the updated node, :class:`Node`
        '''
        node.fill_defaults()
        self.reconfig_node(node.name, node.to_xml())
        return node

    def reconfig_node(self, name, config_xml):
        '''Change the configuration for an existing node.

        :param name: Jenkins node name, ``str``
        :param config_xml: New XML configuration, ``str``
        '''
        self.post_xml(self.endpoints.CONFIG_NODE, config_xml,
                      variables={'name': name})

    def delete_node(self, name):
        '''Delete Jenkins node permanently.

        :param name: Name of Jenkins node, ``str``
        '''
        self.post_xml(self.endpoints.DELETE_NODE, variables={'name': name})

    def disable_node(self, name, msg=''):
        '''Disable a node

        :param name: Jenkins node name, ``str``
        :param msg: Offline message, ``str``
        '''
        info = self.get_node_info(name)
        if info['offline']:
            return
        self.post_form(self.endpoints.TOGGLE_OFFLINE, {},
                       variables={'name': name, 'msg': msg})

    def enable_node(self, name):
        '''Enable a node

        :param name: Jenkins node name, ``str``
        '''
        info = self.get_node_info(name)
        if not info['offline']:
            return
        self.post_form(self.endpoints.TOGGLE_OFFLINE, {},
                       variables={'name': name, 'msg': ''})
