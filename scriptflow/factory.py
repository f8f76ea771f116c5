"""Application factory for creating FastAPI instances."""

from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from .config import AppConfig, get_config
from .core.logging import setup_logging
from .storage.database import init_database
from .core.command_registry import CommandRegistry
from .core.compiler import ScriptWorkflowCompiler
from .core.interpreter import ProgramExecutor
from .core.node_templates import NodeTemplateCatalog
from .core.script_manager import ScriptManager
from .core.workflow_executor import WorkflowExecutor
from .core.workflow_manager import WorkflowManager
from .commands.default_handlers import StudioState, register_default_handlers
from .api.endpoints import router, init_dependencies


class ApplicationState:
    """Container for application state and components."""

    def __init__(self):
        self.config: Optional[AppConfig] = None
        self.command_registry: Optional[CommandRegistry] = None
        self.template_catalog: Optional[NodeTemplateCatalog] = None
        self.workflow_manager: Optional[WorkflowManager] = None
        self.workflow_executor: Optional[WorkflowExecutor] = None
        self.script_manager: Optional[ScriptManager] = None
        self.studio_state: Optional[StudioState] = None
        self.logger = None


# Global application state
app_state = ApplicationState()


def initialize_core_components(config: AppConfig, logger) -> ApplicationState:
    """Build the registry, catalog, managers and executors and wire them together."""
    try:
        command_registry = CommandRegistry()
        app_state.studio_state = None
        if config.register_default_handlers:
            app_state.studio_state = register_default_handlers(command_registry)

        template_catalog = NodeTemplateCatalog()
        workflow_manager = WorkflowManager(catalog=template_catalog)
        workflow_executor = WorkflowExecutor(
            workflow_manager=workflow_manager,
            registry=command_registry,
            catalog=template_catalog,
            history_limit=config.execution_history_limit
        )
        program_executor = ProgramExecutor(
            command_registry,
            default_wait_seconds=config.default_wait_seconds
        )
        script_manager = ScriptManager(
            registry=command_registry,
            executor=program_executor,
            compiler=ScriptWorkflowCompiler(workflow_manager)
        )

        app_state.config = config
        app_state.command_registry = command_registry
        app_state.template_catalog = template_catalog
        app_state.workflow_manager = workflow_manager
        app_state.workflow_executor = workflow_executor
        app_state.script_manager = script_manager

        logger.info(
            f"Core components initialized ({len(command_registry)} commands, "
            f"{len(template_catalog)} node templates)"
        )
        return app_state

    except Exception as e:
        logger.error(f"Core components initialization failed: {e}")
        raise


def create_lifespan_handler(config: AppConfig):
    """Create application lifespan handler."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger = setup_logging(
            level=config.log_level.value,
            log_file=config.log_file,
            log_format=config.log_format,
            structured=config.structured_logging,
            max_size=config.log_max_size,
            backup_count=config.log_backup_count
        )
        app_state.logger = logger
        logger.info(f"Starting {config.app_name} v{config.app_version}")

        try:
            init_database(config.database_url, echo=config.database_echo)
            logger.info("Database tables created")

            state = initialize_core_components(config, logger)
            init_dependencies(
                script_manager=state.script_manager,
                workflow_manager=state.workflow_manager,
                workflow_executor=state.workflow_executor,
                command_registry=state.command_registry,
                template_catalog=state.template_catalog
            )
            logger.info("Application startup completed successfully")
        except Exception as e:
            logger.error(f"Application startup failed: {e}")
            raise

        yield

        # Shutdown
        active = len(app_state.workflow_executor.get_active_executions()) if app_state.workflow_executor else 0
        if active:
            logger.warning(f"Shutting down with {active} workflow executions still running")
        logger.info(f"Shutting down {config.app_name}")

    return lifespan


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Create and configure FastAPI application instance."""

    # Use provided config or load from environment
    if config is None:
        config = get_config()

    app = FastAPI(
        title=config.app_name,
        description="Event-driven automation engine: a rule scripting language and visual node workflows",
        version=config.app_version,
        debug=config.debug,
        lifespan=create_lifespan_handler(config)
    )

    # Add CORS middleware
    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Include API router
    app.include_router(router)

    # Add health check endpoints
    add_health_endpoints(app, config)

    return app


def add_health_endpoints(app: FastAPI, config: AppConfig) -> None:
    """Add health check endpoints to the application."""

    @app.get("/")
    async def root():
        """Root endpoint for basic health check."""
        return {"message": f"{config.app_name} is running", "version": config.app_version}

    @app.get("/health")
    async def health_check():
        """Basic health check endpoint with component counts."""
        registry = app_state.command_registry
        executor = app_state.workflow_executor
        return {
            "status": "healthy",
            "service": config.app_name.lower().replace(" ", "-"),
            "version": config.app_version,
            "registered_commands": len(registry) if registry is not None else 0,
            "active_executions": len(executor.get_active_executions()) if executor is not None else 0
        }


def get_app_state() -> ApplicationState:
    """Get the current application state."""
    return app_state

