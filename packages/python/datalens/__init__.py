from . import common
from . import telemetry
from . import memory
from . import protocol
from . import datasource
from . import llm
from . import splunk
from . import bitbucket
from . import outlook
from . import agent
from . import client
